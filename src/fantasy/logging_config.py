"""Logging setup for applications embedding the fantasy engine.

Every engine module logs under the ``fantasy`` hierarchy
(``fantasy.roster``, ``fantasy.scoring``, ...).  ``setup_logging`` sends
that output to the console and to a per-run file, and lets the caller
tune the engine as a whole or one module at a time; per-mutation roster
DEBUG lines are the usual candidate for silencing.

``open_service()`` in ``fantasy.service`` calls this on startup.
"""

import logging
from datetime import datetime
from pathlib import Path

ENGINE_LOGGER = "fantasy"

CONSOLE_FORMAT = "%(asctime)s %(levelname)-5s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"


def setup_logging(
    data_dir: str = "data",
    console_level: int = logging.INFO,
    engine_level: int = logging.DEBUG,
    module_levels: dict[str, int] | None = None,
) -> Path:
    """Attach console and file handlers to the root logger.

    The file under ``{data_dir}/logs/`` records everything the engine
    emits, with the logger name; the console shows ``console_level`` and
    above.  Handlers already on the root logger are closed and replaced,
    so calling this again does not double the output.

    Args:
        data_dir: Base data directory; ``logs/`` is created inside it.
        console_level: Minimum level printed to the console.
        engine_level: Level of the ``fantasy`` logger, i.e. the floor for
            every engine module.
        module_levels: Overrides for individual engine modules, keyed by
            short name (``{"roster": logging.INFO}``) or full logger name.

    Returns:
        Path of the log file for this run.
    """
    log_dir = Path(data_dir) / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"fantasy-{datetime.now():%Y-%m-%d-%H%M%S}.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root.addHandler(file_handler)

    logging.getLogger(ENGINE_LOGGER).setLevel(engine_level)
    for name, level in (module_levels or {}).items():
        if not name.startswith(ENGINE_LOGGER + "."):
            name = f"{ENGINE_LOGGER}.{name}"
        logging.getLogger(name).setLevel(level)

    return log_file
