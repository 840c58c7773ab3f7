"""Formation catalog: the source of starter slot limits per position.

Every formation has one goalkeeper and ten outfield slots.  Other
modules read limits through ``get_formation()`` rather than parsing
codes themselves.
"""

from dataclasses import dataclass

from fantasy.exceptions import InvalidFormation

POSITIONS = ("GK", "DEF", "MID", "FWD")


@dataclass(frozen=True)
class Formation:
    """A formation code with its display label and per-position slots."""

    code: str
    label: str
    slots: dict[str, int]

    @property
    def total_slots(self) -> int:
        return sum(self.slots.values())

    def slots_for(self, position: str) -> int:
        return self.slots.get(position, 0)


def _formation(code: str, label: str) -> Formation:
    defenders, midfielders, forwards = (int(n) for n in code.split("-"))
    return Formation(
        code=code,
        label=label,
        slots={"GK": 1, "DEF": defenders, "MID": midfielders, "FWD": forwards},
    )


FORMATIONS: dict[str, Formation] = {
    f.code: f
    for f in (
        _formation("4-3-3", "4-3-3 Classic"),
        _formation("4-4-2", "4-4-2 Balanced"),
        _formation("3-5-2", "3-5-2 Midfield"),
        _formation("3-4-3", "3-4-3 Attacking"),
        _formation("4-5-1", "4-5-1 Compact"),
        _formation("5-3-2", "5-3-2 Defensive"),
        _formation("5-4-1", "5-4-1 Park the bus"),
    )
}

FORMATION_CODES = tuple(FORMATIONS)


def get_formation(code: str) -> Formation:
    """Return the formation for *code* or raise ``InvalidFormation``."""
    try:
        return FORMATIONS[code]
    except KeyError:
        raise InvalidFormation(
            f"Unknown formation {code!r}. Valid values: {', '.join(FORMATION_CODES)}"
        ) from None
