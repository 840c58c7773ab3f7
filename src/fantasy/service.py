"""Calling layer: validated commands in, engine operations out.

``FantasyService`` is where the matchday lock is enforced.  Every command
with ``mutates_squad`` set runs ``MatchdayService.ensure_unlocked()``
inside the same write transaction as the roster or transfer call, so a
concurrent lifecycle transition cannot slip in between the check and the
write.  The engines themselves never check the lock, so code that
calls them directly takes over that responsibility.

Commands address squads by user id; the service resolves the user's
squad.  Raw payloads go through ``dispatch()``, which validates them into
the typed command first (pydantic ``ValidationError`` on bad input).

Applications start with ``open_service()``, which sets up logging, opens
and migrates the database named by the config, and yields a ready
service.
"""

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from fantasy.config import FantasyConfig
from fantasy.db import Database, transaction
from fantasy.exceptions import SquadNotFound
from fantasy.leaderboard import Leaderboard
from fantasy.logging_config import setup_logging
from fantasy.matchday import MatchdayService
from fantasy.models import (
    AddPlayerCommand,
    AdvanceMatchdayCommand,
    BuyPlayerCommand,
    CreateSquadCommand,
    RemovePlayerCommand,
    SellPlayerCommand,
    SetCaptainCommand,
    SwapPlayersCommand,
    ToggleStarterCommand,
    UpdateFormationCommand,
)
from fantasy.roster import RosterEngine
from fantasy.scoring import ScoringEngine
from fantasy.simulation import StatGenerator
from fantasy.transfers import TransferEngine

logger = logging.getLogger(__name__)

COMMANDS = {
    "create_squad": CreateSquadCommand,
    "add_player": AddPlayerCommand,
    "remove_player": RemovePlayerCommand,
    "toggle_starter": ToggleStarterCommand,
    "swap_players": SwapPlayersCommand,
    "set_captain": SetCaptainCommand,
    "update_formation": UpdateFormationCommand,
    "buy_player": BuyPlayerCommand,
    "sell_player": SellPlayerCommand,
    "advance_matchday": AdvanceMatchdayCommand,
}


class FantasyService:
    """Composes the engines over one connection."""

    def __init__(
        self, conn: sqlite3.Connection, config: FantasyConfig | None = None
    ) -> None:
        self.conn = conn
        self.config = config or FantasyConfig()
        self.roster = RosterEngine(conn, self.config)
        self.transfers = TransferEngine(conn, self.config, roster=self.roster)
        self.scoring = ScoringEngine(conn, self.config, roster=self.roster)
        self.stats = StatGenerator(conn, self.config)
        self.matchdays = MatchdayService(
            conn, self.config, stats=self.stats, scoring=self.scoring
        )
        self.leaderboard = Leaderboard(conn, self.config)

    def dispatch(self, name: str, payload: dict):
        """Validate *payload* as the command called *name* and execute it."""
        if name not in COMMANDS:
            raise ValueError(f"Unknown command: {name}")
        return self.execute(COMMANDS[name].model_validate(payload))

    def execute(self, command):
        """Run one typed command, applying the lock guard where it mutates squads.

        The lock check and the mutation share one write transaction, so a
        concurrent OPEN -> LOCK transition either commits before the check
        (and the command is rejected) or waits until the mutation commits.
        """
        logger.debug("Executing %s", type(command).__name__)
        if not command.mutates_squad:
            return self._run(command)

        with transaction(self.conn):
            self.matchdays.ensure_unlocked()
            return self._run(command)

    def _run(self, command):
        if isinstance(command, AdvanceMatchdayCommand):
            return self.matchdays.advance(command.matchday_id, command.target_status)
        if isinstance(command, CreateSquadCommand):
            return self.roster.create_squad(command.user_id, command.formation)
        if isinstance(command, BuyPlayerCommand):
            return self.transfers.buy_player(command.user_id, command.player_id)
        if isinstance(command, SellPlayerCommand):
            return self.transfers.sell_player(command.user_id, command.player_id)

        squad_id = self._squad_id(command.user_id)
        if isinstance(command, AddPlayerCommand):
            return self.roster.add_player(squad_id, command.player_id, command.as_starter)
        if isinstance(command, RemovePlayerCommand):
            return self.roster.remove_player(squad_id, command.player_id)
        if isinstance(command, ToggleStarterCommand):
            return self.roster.toggle_starter(squad_id, command.player_id)
        if isinstance(command, SwapPlayersCommand):
            return self.roster.swap_players(
                squad_id, command.player_id_a, command.player_id_b
            )
        if isinstance(command, SetCaptainCommand):
            return self.roster.set_captain(squad_id, command.player_id, command.role)
        if isinstance(command, UpdateFormationCommand):
            return self.roster.update_formation(squad_id, command.formation)

        raise TypeError(f"Unsupported command: {type(command).__name__}")

    def _squad_id(self, user_id: str) -> int:
        squad = self.roster.get_squad_for_user(user_id)
        if squad is None:
            raise SquadNotFound(f"User {user_id} has no squad")
        return squad["squad_id"]


@contextmanager
def open_service(
    config: FantasyConfig | None = None,
    console_level: int = logging.INFO,
    module_levels: dict[str, int] | None = None,
) -> Iterator[FantasyService]:
    """Entry point for applications: logging, database, service.

    Logs go under ``config.data_dir``; the database at ``config.db_path``
    is created and migrated if needed and closed on exit.

    Usage::

        with open_service(FantasyConfig(db_path="data/league.db")) as svc:
            svc.dispatch("buy_player", {"user_id": "u1", "player_id": 7})
    """
    config = config or FantasyConfig()
    log_file = setup_logging(
        data_dir=config.data_dir,
        console_level=console_level,
        module_levels=module_levels,
    )
    with Database(config.db_path) as db:
        applied = db.apply_migrations()
        logger.info(
            "Opened %s (schema v%d, %d migrations applied), logging to %s",
            config.db_path, db.get_schema_version(), applied, log_file,
        )
        yield FantasyService(db.conn, config)
