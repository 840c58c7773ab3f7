"""Matchday lifecycle: OPEN -> LOCK -> LIVE -> RESULTS.

The current matchday is the earliest (by start date) that has not reached
RESULTS; once every matchday is in RESULTS it is the latest one.  Squad
changes are allowed only while the current matchday is OPEN.

Transitions are forward-only and single-step.  Each runs in one
transaction together with its match and stat side effects:

* LIVE: the matchday's scheduled matches are split into finished, in
  progress and still scheduled; finished and live matches get scores,
  finished matches get stats.
* RESULTS: every match is finished with a final score and matches without
  any stats get generated ones.  After that commit, every squad owner is
  scored, one transaction per user.
"""

import logging
import sqlite3
from dataclasses import dataclass, field

from fantasy.config import FantasyConfig
from fantasy.db import transaction
from fantasy.exceptions import InvalidTransition, MatchdayLocked, MatchdayNotFound
from fantasy.scoring import ScoringEngine, ScoringRun
from fantasy.simulation import StatGenerator

logger = logging.getLogger(__name__)

MATCHDAY_STATUSES = ("OPEN", "LOCK", "LIVE", "RESULTS")

# Only legal transitions; everything else is InvalidTransition.
NEXT_STATUS = {"OPEN": "LOCK", "LOCK": "LIVE", "LIVE": "RESULTS"}

SELECT_MATCHES = """
    SELECT
        m.*,
        ht.name AS home_team_name, ht.logo AS home_team_logo,
        at.name AS away_team_name, at.logo AS away_team_logo
    FROM matches m
    JOIN teams ht ON ht.team_id = m.home_team_id
    JOIN teams at ON at.team_id = m.away_team_id
    WHERE m.matchday_id = ?
    ORDER BY m.kickoff, m.match_id
"""


@dataclass
class LockState:
    """Whether squad changes are closed, and why."""

    locked: bool
    status: str | None = None
    matchday_name: str | None = None
    matchday_id: int | None = None


@dataclass
class AdvanceResult:
    """What a lifecycle transition changed."""

    matchday_id: int
    matchday_name: str
    previous_status: str
    new_status: str
    finished_match_ids: list[int] = field(default_factory=list)
    live_match_ids: list[int] = field(default_factory=list)
    stats_created: int = 0
    scoring: ScoringRun | None = None


class MatchdayService:
    """Reads and advances matchdays; owns the squad lock."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: FantasyConfig | None = None,
        stats: StatGenerator | None = None,
        scoring: ScoringEngine | None = None,
    ) -> None:
        self.conn = conn
        self.config = config or FantasyConfig()
        self.stats = stats or StatGenerator(conn, self.config)
        self.scoring = scoring or ScoringEngine(conn, self.config)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_current_matchday(self) -> dict | None:
        """Return the current matchday with its matches, or None if none exist."""
        row = self.conn.execute(
            "SELECT * FROM matchdays WHERE status != 'RESULTS' "
            "ORDER BY start_date, matchday_id LIMIT 1"
        ).fetchone()
        if row is None:
            row = self.conn.execute(
                "SELECT * FROM matchdays "
                "ORDER BY start_date DESC, matchday_id DESC LIMIT 1"
            ).fetchone()
        if row is None:
            return None
        return self._with_matches(dict(row))

    def get_matchday(self, matchday_id: int) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM matchdays WHERE matchday_id = ?", (matchday_id,)
        ).fetchone()
        if row is None:
            return None
        return self._with_matches(dict(row))

    def list_matchdays(self) -> list[dict]:
        """All matchdays by start date, each with its ``match_count``."""
        rows = self.conn.execute(
            """
            SELECT md.*, COUNT(m.match_id) AS match_count
            FROM matchdays md
            LEFT JOIN matches m ON m.matchday_id = md.matchday_id
            GROUP BY md.matchday_id
            ORDER BY md.start_date, md.matchday_id
            """
        ).fetchall()
        return [dict(r) for r in rows]

    def get_matchday_overview(self) -> dict | None:
        """Match counts by status for the current matchday."""
        current = self.get_current_matchday()
        if current is None:
            return None

        counts = {"SCHEDULED": 0, "LIVE": 0, "FINISHED": 0, "POSTPONED": 0}
        for m in current["matches"]:
            counts[m["status"]] += 1
        return {
            "matchday_id": current["matchday_id"],
            "name": current["name"],
            "status": current["status"],
            "total": len(current["matches"]),
            "scheduled": counts["SCHEDULED"],
            "live": counts["LIVE"],
            "finished": counts["FINISHED"],
            "postponed": counts["POSTPONED"],
        }

    # ------------------------------------------------------------------
    # Lock
    # ------------------------------------------------------------------

    def is_locked(self) -> LockState:
        """Squad changes are closed unless the current matchday is OPEN.

        With no matchdays at all nothing is locked.  When every matchday
        has reached RESULTS the season is over and everything is locked.
        """
        current = self.conn.execute(
            "SELECT * FROM matchdays WHERE status != 'RESULTS' "
            "ORDER BY start_date, matchday_id LIMIT 1"
        ).fetchone()
        if current is None:
            latest = self.conn.execute(
                "SELECT * FROM matchdays "
                "ORDER BY start_date DESC, matchday_id DESC LIMIT 1"
            ).fetchone()
            if latest is None:
                return LockState(locked=False)
            return LockState(
                locked=True,
                status=latest["status"],
                matchday_name=latest["name"],
                matchday_id=latest["matchday_id"],
            )

        return LockState(
            locked=current["status"] != "OPEN",
            status=current["status"],
            matchday_name=current["name"],
            matchday_id=current["matchday_id"],
        )

    def ensure_unlocked(self) -> None:
        """Raise ``MatchdayLocked`` if squad changes are currently closed."""
        state = self.is_locked()
        if state.locked:
            raise MatchdayLocked(
                f"Matchday '{state.matchday_name}' is {state.status}; "
                "squad changes are closed",
                status=state.status,
                matchday_name=state.matchday_name,
                matchday_id=state.matchday_id,
            )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def advance(self, matchday_id: int, target_status: str) -> AdvanceResult:
        """Move a matchday one step forward to *target_status*.

        Raises:
            MatchdayNotFound: no matchday with this id.
            InvalidTransition: *target_status* is not the single next
                status (backward moves, skips, no-ops, unknown values).
        """
        with transaction(self.conn):
            matchday = self.conn.execute(
                "SELECT * FROM matchdays WHERE matchday_id = ?", (matchday_id,)
            ).fetchone()
            if matchday is None:
                raise MatchdayNotFound(
                    f"Matchday {matchday_id} does not exist", matchday_id=matchday_id
                )

            current = matchday["status"]
            if NEXT_STATUS.get(current) != target_status:
                raise InvalidTransition(
                    f"Cannot move matchday '{matchday['name']}' "
                    f"from {current} to {target_status}",
                    matchday_id=matchday_id,
                )

            self.conn.execute(
                "UPDATE matchdays SET status = ? WHERE matchday_id = ?",
                (target_status, matchday_id),
            )
            result = AdvanceResult(
                matchday_id=matchday_id,
                matchday_name=matchday["name"],
                previous_status=current,
                new_status=target_status,
            )
            if target_status == "LIVE":
                self._go_live(result)
            elif target_status == "RESULTS":
                self._finish_all(result)

        logger.info(
            "Matchday %d (%s): %s -> %s, %d finished, %d live, %d stat rows",
            matchday_id, result.matchday_name, current, target_status,
            len(result.finished_match_ids), len(result.live_match_ids),
            result.stats_created,
        )

        if target_status == "RESULTS":
            result.scoring = self.scoring.calculate_all_users_points(matchday_id)
        return result

    def advance_current(self) -> AdvanceResult:
        """Advance the current matchday by one step."""
        current = self.get_current_matchday()
        if current is None:
            raise MatchdayNotFound("There are no matchdays")
        target = NEXT_STATUS.get(current["status"])
        if target is None:
            raise InvalidTransition(
                f"Matchday '{current['name']}' is already {current['status']}",
                matchday_id=current["matchday_id"],
            )
        return self.advance(current["matchday_id"], target)

    def _go_live(self, result: AdvanceResult) -> None:
        scheduled = [
            r["match_id"]
            for r in self.conn.execute(
                "SELECT match_id FROM matches "
                "WHERE matchday_id = ? AND status = 'SCHEDULED' "
                "ORDER BY kickoff, match_id",
                (result.matchday_id,),
            ).fetchall()
        ]
        self.stats.rng.shuffle(scheduled)

        n_finished = int(len(scheduled) * self.config.live_finished_fraction)
        n_live = min(self.config.live_in_progress_count, len(scheduled) - n_finished)
        result.finished_match_ids = sorted(scheduled[:n_finished])
        result.live_match_ids = sorted(scheduled[n_finished:n_finished + n_live])

        for match_id in result.finished_match_ids:
            self._set_score(match_id, "FINISHED")
            result.stats_created += self.stats.generate_match_stats(match_id)
        for match_id in result.live_match_ids:
            self._set_score(match_id, "LIVE")

    def _finish_all(self, result: AdvanceResult) -> None:
        matches = self.conn.execute(
            "SELECT match_id, status FROM matches WHERE matchday_id = ? "
            "ORDER BY kickoff, match_id",
            (result.matchday_id,),
        ).fetchall()

        for m in matches:
            if m["status"] in ("SCHEDULED", "POSTPONED"):
                self._set_score(m["match_id"], "FINISHED")
            elif m["status"] == "LIVE":
                # The in-progress score stands as final.
                self.conn.execute(
                    "UPDATE matches SET status = 'FINISHED' WHERE match_id = ?",
                    (m["match_id"],),
                )
            else:
                continue
            result.finished_match_ids.append(m["match_id"])

        for m in matches:
            has_stats = self.conn.execute(
                "SELECT 1 FROM player_match_stats WHERE match_id = ? LIMIT 1",
                (m["match_id"],),
            ).fetchone()
            if has_stats is None:
                result.stats_created += self.stats.generate_match_stats(m["match_id"])

    def _set_score(self, match_id: int, status: str) -> None:
        home, away = self.stats.simulate_score()
        self.conn.execute(
            "UPDATE matches SET home_score = ?, away_score = ?, status = ? "
            "WHERE match_id = ?",
            (home, away, status, match_id),
        )

    def _with_matches(self, matchday: dict) -> dict:
        matchday["matches"] = [
            dict(r)
            for r in self.conn.execute(SELECT_MATCHES, (matchday["matchday_id"],))
        ]
        return matchday
