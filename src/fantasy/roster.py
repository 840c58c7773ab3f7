"""Squad roster engine: every squad mutation and the invariants it must keep.

A squad holds up to ``max_squad_size`` players split into starters and
bench.  After every operation the following hold, or the operation is
rolled back as a whole:

* starters <= ``max_starters``, bench <= ``max_bench``, total <= ``max_squad_size``
* starters per position <= the active formation's slot count
* sum of ``fantasy_price`` <= ``starting_budget``
* at most one captain and one vice-captain (``captainSub``), different
  players, both starters

Each public mutator runs inside ``transaction(self.conn)``: squad state
is read after the write lock is taken, specific rule checks raise the
caller-facing errors, writes are applied, and ``_verify()`` re-checks the
full invariant set before commit.

The engine does NOT consult the matchday lock.  Callers must run
``MatchdayService.ensure_unlocked()`` first (``FantasyService`` does).
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fantasy.config import FantasyConfig
from fantasy.db import transaction
from fantasy.exceptions import (
    BudgetExceeded,
    DuplicatePlayer,
    DuplicateSquad,
    NotAStarter,
    PlayerNotFound,
    SlotFull,
    SlotViolation,
    SquadFull,
    SquadNotFound,
    SquadRuleError,
)
from fantasy.formations import POSITIONS, Formation, get_formation

logger = logging.getLogger(__name__)

CAPTAIN_ROLES = {"captain": "is_captain", "captainSub": "is_captain_sub"}

_MEMBER_QUERY = """
    SELECT
        sp.squad_id, sp.player_id, sp.is_starter, sp.is_captain,
        sp.is_captain_sub, sp.added_at,
        p.name, p.position, p.rating, p.fantasy_price,
        p.team_id, t.name AS team_name
    FROM squad_players sp
    JOIN players p ON p.player_id = sp.player_id
    JOIN teams t ON t.team_id = p.team_id
"""

SELECT_MEMBERS = _MEMBER_QUERY + """
    WHERE sp.squad_id = ?
    ORDER BY sp.added_at, sp.player_id
"""

SELECT_MEMBER = _MEMBER_QUERY + """
    WHERE sp.squad_id = ? AND sp.player_id = ?
"""


@dataclass
class SquadSummary:
    """Counts, value and captaincy of one squad."""

    id: int
    formation: str
    player_count: int
    starter_count: int
    bench_count: int
    total_value: float
    remaining_budget: float
    captain_id: int | None
    captain_sub_id: int | None


@dataclass
class SquadValidation:
    """Whether a squad is a complete, match-ready lineup."""

    valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class FormationChange:
    """Result of ``update_formation``: who moved where."""

    formation: str
    moved_to_bench: list[int] = field(default_factory=list)
    promoted_to_starter: list[int] = field(default_factory=list)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _money(value: float) -> float:
    """Round a price sum to cents so float noise never trips the budget."""
    return round(value, 2)


def _member(row: sqlite3.Row) -> dict:
    data = dict(row)
    for flag in ("is_starter", "is_captain", "is_captain_sub"):
        data[flag] = bool(data[flag])
    return data


def _rating(member: dict) -> float:
    return member["rating"] if member["rating"] is not None else float("-inf")


class RosterEngine:
    """Creates squads and applies roster changes under the squad invariants.

    Receives a raw ``sqlite3.Connection`` like the repositories do.
    """

    def __init__(
        self, conn: sqlite3.Connection, config: FantasyConfig | None = None
    ) -> None:
        self.conn = conn
        self.config = config or FantasyConfig()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_squad(self, squad_id: int) -> dict | None:
        """Return a squad row as a dict, or None if not found."""
        row = self.conn.execute(
            "SELECT * FROM squads WHERE squad_id = ?", (squad_id,)
        ).fetchone()
        return dict(row) if row is not None else None

    def get_squad_for_user(self, user_id: str) -> dict | None:
        """Return the user's squad, or None if they have not created one."""
        row = self.conn.execute(
            "SELECT * FROM squads WHERE user_id = ?", (user_id,)
        ).fetchone()
        return dict(row) if row is not None else None

    def get_members(self, squad_id: int) -> list[dict]:
        """Return squad members joined with player and team data."""
        rows = self.conn.execute(SELECT_MEMBERS, (squad_id,)).fetchall()
        return [_member(r) for r in rows]

    def get_lineup(self, squad_id: int) -> dict:
        """Return ``{"starters": [...], "bench": [...]}`` for a squad."""
        members = self.get_members(squad_id)
        return {
            "starters": [m for m in members if m["is_starter"]],
            "bench": [m for m in members if not m["is_starter"]],
        }

    def squad_value(self, squad_id: int) -> float:
        """Sum of ``fantasy_price`` over all squad members."""
        value = self.conn.execute(
            "SELECT COALESCE(SUM(p.fantasy_price), 0) FROM squad_players sp "
            "JOIN players p ON p.player_id = sp.player_id "
            "WHERE sp.squad_id = ?",
            (squad_id,),
        ).fetchone()[0]
        return _money(value)

    def remaining_budget(self, squad_id: int) -> float:
        """Starting budget minus the current squad value."""
        return _money(self.config.starting_budget - self.squad_value(squad_id))

    def get_squad_summary(self, user_id: str) -> SquadSummary | None:
        """Summarize the user's squad.

        Returns None when the user has no squad, and a summary with
        ``player_count == 0`` when the squad exists but is empty.
        """
        squad = self.get_squad_for_user(user_id)
        if squad is None:
            return None

        members = self.get_members(squad["squad_id"])
        starters = [m for m in members if m["is_starter"]]
        total_value = _money(sum(m["fantasy_price"] for m in members))
        captain = next((m for m in members if m["is_captain"]), None)
        captain_sub = next((m for m in members if m["is_captain_sub"]), None)

        return SquadSummary(
            id=squad["squad_id"],
            formation=squad["formation"],
            player_count=len(members),
            starter_count=len(starters),
            bench_count=len(members) - len(starters),
            total_value=total_value,
            remaining_budget=_money(self.config.starting_budget - total_value),
            captain_id=captain["player_id"] if captain else None,
            captain_sub_id=captain_sub["player_id"] if captain_sub else None,
        )

    def validate_squad(self, squad_id: int) -> SquadValidation:
        """Check whether the squad is complete enough to field.

        Partial squads are legal while assembling; this only reports what
        is still missing.
        """
        squad = self._require_squad(squad_id)
        formation = get_formation(squad["formation"])
        members = self.get_members(squad_id)
        errors: list[str] = []

        starters = [m for m in members if m["is_starter"]]
        if len(starters) != formation.total_slots:
            errors.append(
                f"Need {formation.total_slots} starters, have {len(starters)}"
            )
        for position in POSITIONS:
            have = sum(1 for m in starters if m["position"] == position)
            need = formation.slots_for(position)
            if have != need:
                errors.append(f"{position}: need {need} starters, have {have}")
        if not any(m["is_captain"] for m in members):
            errors.append("No captain selected")

        return SquadValidation(valid=not errors, errors=errors)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_squad(self, user_id: str, formation_code: str | None = None) -> dict:
        """Create an empty squad for a user who does not own one yet."""
        code = formation_code or self.config.default_formation
        get_formation(code)

        with transaction(self.conn):
            if self.get_squad_for_user(user_id) is not None:
                raise DuplicateSquad(f"User {user_id} already has a squad")

            now = _now()
            cursor = self.conn.execute(
                "INSERT INTO squads (user_id, formation, created_at, updated_at) "
                "VALUES (?, ?, ?, ?)",
                (user_id, code, now, now),
            )
            squad_id = cursor.lastrowid

        logger.info("Created squad %d for user %s (%s)", squad_id, user_id, code)
        return self.get_squad(squad_id)

    def add_player(self, squad_id: int, player_id: int, as_starter: bool = True) -> dict:
        """Add a catalog player to the squad as a starter or on the bench."""
        with transaction(self.conn):
            squad = self._require_squad(squad_id)
            formation = get_formation(squad["formation"])
            members = self.get_members(squad_id)

            player = self.conn.execute(
                "SELECT * FROM players WHERE player_id = ?", (player_id,)
            ).fetchone()
            if player is None:
                raise PlayerNotFound(
                    f"Player {player_id} does not exist", player_id=player_id
                )
            if any(m["player_id"] == player_id for m in members):
                raise DuplicatePlayer(
                    f"{player['name']} is already in the squad",
                    squad_id=squad_id, player_id=player_id,
                )
            if len(members) >= self.config.max_squad_size:
                raise SquadFull(
                    f"Squad already has {self.config.max_squad_size} players",
                    squad_id=squad_id, player_id=player_id,
                )

            value = sum(m["fantasy_price"] for m in members)
            if _money(value + player["fantasy_price"]) > self.config.starting_budget:
                remaining = _money(self.config.starting_budget - value)
                raise BudgetExceeded(
                    f"{player['name']} costs ${player['fantasy_price']}M but only "
                    f"${remaining}M remains",
                    squad_id=squad_id, player_id=player_id,
                )

            if as_starter:
                self._check_starter_slot(squad_id, formation, members, player)
            else:
                bench = sum(1 for m in members if not m["is_starter"])
                if bench >= self.config.max_bench:
                    raise SquadFull(
                        f"Bench already has {self.config.max_bench} players",
                        squad_id=squad_id, player_id=player_id,
                    )

            self.conn.execute(
                "INSERT INTO squad_players (squad_id, player_id, is_starter, added_at) "
                "VALUES (?, ?, ?, ?)",
                (squad_id, player_id, int(as_starter), _now()),
            )
            self._touch(squad_id)
            self._verify(squad_id)

        logger.debug(
            "Squad %d: added player %d (%s)",
            squad_id, player_id, "starter" if as_starter else "bench",
        )
        return self._require_member(squad_id, player_id)

    def remove_player(self, squad_id: int, player_id: int) -> dict:
        """Remove a player from the squad; returns the removed member.

        Any captaincy the player held goes with the row.
        """
        with transaction(self.conn):
            self._require_squad(squad_id)
            member = self._require_member(squad_id, player_id)
            self.conn.execute(
                "DELETE FROM squad_players WHERE squad_id = ? AND player_id = ?",
                (squad_id, player_id),
            )
            self._touch(squad_id)
            self._verify(squad_id)

        logger.debug("Squad %d: removed player %d", squad_id, player_id)
        return member

    def toggle_starter(self, squad_id: int, player_id: int) -> bool:
        """Move a player between starters and bench; returns the new state.

        Benching a player clears their captain/vice-captain flags.
        """
        with transaction(self.conn):
            squad = self._require_squad(squad_id)
            formation = get_formation(squad["formation"])
            member = self._require_member(squad_id, player_id)
            members = self.get_members(squad_id)

            if member["is_starter"]:
                bench = sum(1 for m in members if not m["is_starter"])
                if bench >= self.config.max_bench:
                    raise SquadFull(
                        f"Bench already has {self.config.max_bench} players",
                        squad_id=squad_id, player_id=player_id,
                    )
                self.conn.execute(
                    "UPDATE squad_players SET is_starter = 0, is_captain = 0, "
                    "is_captain_sub = 0 WHERE squad_id = ? AND player_id = ?",
                    (squad_id, player_id),
                )
            else:
                self._check_starter_slot(squad_id, formation, members, member)
                self.conn.execute(
                    "UPDATE squad_players SET is_starter = 1 "
                    "WHERE squad_id = ? AND player_id = ?",
                    (squad_id, player_id),
                )
            self._touch(squad_id)
            self._verify(squad_id)

        now_starter = not member["is_starter"]
        logger.debug(
            "Squad %d: player %d -> %s",
            squad_id, player_id, "starter" if now_starter else "bench",
        )
        return now_starter

    def swap_players(self, squad_id: int, player_id_a: int, player_id_b: int) -> dict:
        """Exchange the starter flags of two squad members in one step.

        Positions may differ; the resulting lineup must still fit the
        formation or ``SlotViolation`` is raised and nothing changes.
        Whoever ends on the bench loses any captaincy.

        Returns:
            Dict mapping each player id to its new ``is_starter`` value.
        """
        with transaction(self.conn):
            self._require_squad(squad_id)
            a = self._require_member(squad_id, player_id_a)
            b = self._require_member(squad_id, player_id_b)

            for member, new_starter in ((a, b["is_starter"]), (b, a["is_starter"])):
                if new_starter:
                    self.conn.execute(
                        "UPDATE squad_players SET is_starter = 1 "
                        "WHERE squad_id = ? AND player_id = ?",
                        (squad_id, member["player_id"]),
                    )
                else:
                    self.conn.execute(
                        "UPDATE squad_players SET is_starter = 0, is_captain = 0, "
                        "is_captain_sub = 0 WHERE squad_id = ? AND player_id = ?",
                        (squad_id, member["player_id"]),
                    )
            self._touch(squad_id)
            self._verify(squad_id)

        logger.debug("Squad %d: swapped players %d and %d", squad_id, player_id_a, player_id_b)
        return {player_id_a: b["is_starter"], player_id_b: a["is_starter"]}

    def set_captain(self, squad_id: int, player_id: int, role: str = "captain") -> None:
        """Give *role* (``captain`` or ``captainSub``) to a starter.

        The previous holder of the role loses it.  If the player held the
        other role it is cleared, so captain and vice-captain never
        coincide.
        """
        if role not in CAPTAIN_ROLES:
            raise ValueError(f"role must be one of {', '.join(CAPTAIN_ROLES)}")
        column = CAPTAIN_ROLES[role]
        other = "is_captain_sub" if column == "is_captain" else "is_captain"

        with transaction(self.conn):
            self._require_squad(squad_id)
            member = self._require_member(squad_id, player_id)
            if not member["is_starter"]:
                raise NotAStarter(
                    f"{member['name']} is on the bench; only starters can be {role}",
                    squad_id=squad_id, player_id=player_id,
                )
            self.conn.execute(
                f"UPDATE squad_players SET {column} = 0 WHERE squad_id = ?",
                (squad_id,),
            )
            self.conn.execute(
                f"UPDATE squad_players SET {column} = 1, {other} = 0 "
                "WHERE squad_id = ? AND player_id = ?",
                (squad_id, player_id),
            )
            self._touch(squad_id)
            self._verify(squad_id)

        logger.debug("Squad %d: player %d is now %s", squad_id, player_id, role)

    def update_formation(self, squad_id: int, formation_code: str) -> FormationChange:
        """Switch formation and rebalance starters to the new slot counts.

        For each position over its new limit the lowest-rated starters are
        benched (unrated counts as lowest; ties bench the higher player id).
        For each position under its limit the highest-rated bench players
        of that position are promoted (ties promote the lower player id).
        Benched players lose captaincy.  Re-applying the active formation
        moves nobody.
        """
        formation = get_formation(formation_code)
        change = FormationChange(formation=formation.code)

        with transaction(self.conn):
            squad = self._require_squad(squad_id)
            if squad["formation"] == formation.code:
                return change

            members = self.get_members(squad_id)
            for position in POSITIONS:
                limit = formation.slots_for(position)
                starters = [
                    m for m in members if m["is_starter"] and m["position"] == position
                ]
                bench = [
                    m for m in members
                    if not m["is_starter"] and m["position"] == position
                ]

                if len(starters) > limit:
                    starters.sort(key=lambda m: (_rating(m), -m["player_id"]))
                    for m in starters[: len(starters) - limit]:
                        change.moved_to_bench.append(m["player_id"])
                elif len(starters) < limit and bench:
                    bench.sort(key=lambda m: (-_rating(m), m["player_id"]))
                    for m in bench[: limit - len(starters)]:
                        change.promoted_to_starter.append(m["player_id"])

            for pid in change.moved_to_bench:
                self.conn.execute(
                    "UPDATE squad_players SET is_starter = 0, is_captain = 0, "
                    "is_captain_sub = 0 WHERE squad_id = ? AND player_id = ?",
                    (squad_id, pid),
                )
            for pid in change.promoted_to_starter:
                self.conn.execute(
                    "UPDATE squad_players SET is_starter = 1 "
                    "WHERE squad_id = ? AND player_id = ?",
                    (squad_id, pid),
                )
            self.conn.execute(
                "UPDATE squads SET formation = ?, updated_at = ? WHERE squad_id = ?",
                (formation.code, _now(), squad_id),
            )
            self._verify(squad_id)

        logger.info(
            "Squad %d: formation %s -> %s (benched %s, promoted %s)",
            squad_id, squad["formation"], formation.code,
            change.moved_to_bench, change.promoted_to_starter,
        )
        return change

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_squad(self, squad_id: int) -> dict:
        squad = self.get_squad(squad_id)
        if squad is None:
            raise SquadNotFound(f"Squad {squad_id} does not exist", squad_id=squad_id)
        return squad

    def _require_member(self, squad_id: int, player_id: int) -> dict:
        row = self.conn.execute(
            SELECT_MEMBER, (squad_id, player_id)
        ).fetchone()
        if row is None:
            raise PlayerNotFound(
                f"Player {player_id} is not in squad {squad_id}",
                squad_id=squad_id, player_id=player_id,
            )
        return _member(row)

    def _check_starter_slot(
        self, squad_id: int, formation: Formation, members: list[dict], player
    ) -> None:
        """Raise ``SlotFull`` if *player* cannot join the starters."""
        starters = [m for m in members if m["is_starter"]]
        position = player["position"]
        taken = sum(1 for m in starters if m["position"] == position)
        if taken >= formation.slots_for(position) or len(starters) >= self.config.max_starters:
            raise SlotFull(
                f"No free {position} starter slot in {formation.code} "
                f"({taken}/{formation.slots_for(position)})",
                squad_id=squad_id, player_id=player["player_id"],
            )

    def _touch(self, squad_id: int) -> None:
        self.conn.execute(
            "UPDATE squads SET updated_at = ? WHERE squad_id = ?", (_now(), squad_id)
        )

    def _verify(self, squad_id: int) -> None:
        """Re-check the full invariant set against the uncommitted state."""
        squad = self._require_squad(squad_id)
        formation = get_formation(squad["formation"])
        members = self.get_members(squad_id)
        starters = [m for m in members if m["is_starter"]]
        bench_count = len(members) - len(starters)

        if len(members) > self.config.max_squad_size:
            raise SquadFull(f"Squad exceeds {self.config.max_squad_size} players", squad_id=squad_id)
        if bench_count > self.config.max_bench:
            raise SquadFull(f"Bench exceeds {self.config.max_bench} players", squad_id=squad_id)
        if len(starters) > self.config.max_starters:
            raise SlotViolation(
                f"Lineup exceeds {self.config.max_starters} starters", squad_id=squad_id
            )
        for position in POSITIONS:
            count = sum(1 for m in starters if m["position"] == position)
            if count > formation.slots_for(position):
                raise SlotViolation(
                    f"{count} {position} starters exceed the "
                    f"{formation.slots_for(position)} slots of {formation.code}",
                    squad_id=squad_id,
                )

        value = _money(sum(m["fantasy_price"] for m in members))
        if value > self.config.starting_budget:
            raise BudgetExceeded(
                f"Squad value ${value}M exceeds budget ${self.config.starting_budget}M",
                squad_id=squad_id,
            )

        captains = [m for m in members if m["is_captain"]]
        subs = [m for m in members if m["is_captain_sub"]]
        if len(captains) > 1 or len(subs) > 1:
            raise SquadRuleError("Squad has more than one captain or vice-captain", squad_id=squad_id)
        if captains and subs and captains[0]["player_id"] == subs[0]["player_id"]:
            raise SquadRuleError("Captain and vice-captain must differ", squad_id=squad_id)
        for m in captains + subs:
            if not m["is_starter"]:
                raise NotAStarter(
                    f"{m['name']} holds a captaincy but is on the bench",
                    squad_id=squad_id, player_id=m["player_id"],
                )
