"""Scoring engine: match ratings -> role-weighted squad points.

A player's match rating (0-10) is the raw fantasy score.  The squad role
scales it:

* captain           x ``captain_multiplier``  (2.0)
* other starters    x ``starter_multiplier``  (1.0)
* bench             x ``bench_multiplier``    (0.5)

A squad member without a stat row for the matchday did not play and
scores 0 whatever their role.  If several stat rows exist for one player
within a matchday, the row of the earliest match (by kickoff, then
match id) is used and a warning is logged.

Persisted points are a snapshot: ``persist_squad_points`` upserts the
(user, matchday) total and replaces its per-player rows wholesale, so
re-running it with unchanged inputs yields the same stored state.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone

from fantasy.config import FantasyConfig
from fantasy.db import transaction
from fantasy.exceptions import MatchdayNotFound
from fantasy.roster import RosterEngine

logger = logging.getLogger(__name__)

UPSERT_MATCHDAY_POINTS = """
    INSERT INTO matchday_points (
        user_id, matchday_id, squad_id, total_points, calculated_at
    ) VALUES (
        :user_id, :matchday_id, :squad_id, :total_points, :calculated_at
    )
    ON CONFLICT(user_id, matchday_id) DO UPDATE SET
        squad_id      = excluded.squad_id,
        total_points  = excluded.total_points,
        calculated_at = excluded.calculated_at
"""

INSERT_PLAYER_POINTS = """
    INSERT INTO squad_player_points (
        matchday_points_id, player_id, raw_points,
        multiplier, final_points, played
    ) VALUES (
        :matchday_points_id, :player_id, :raw_points,
        :multiplier, :final_points, :played
    )
"""

SELECT_SQUAD_STATS = """
    SELECT s.player_id, s.match_id, s.rating
    FROM player_match_stats s
    JOIN matches m ON m.match_id = s.match_id
    JOIN squad_players sp ON sp.player_id = s.player_id
    WHERE m.matchday_id = ? AND sp.squad_id = ?
    ORDER BY s.player_id, m.kickoff, m.match_id
"""


def calculate_player_points(rating: float) -> float:
    """The match rating is the fantasy score."""
    return float(rating)


def get_multiplier(
    is_starter: bool, is_captain: bool, config: FantasyConfig | None = None
) -> float:
    config = config or FantasyConfig()
    if is_captain:
        return config.captain_multiplier
    if is_starter:
        return config.starter_multiplier
    return config.bench_multiplier


def apply_multiplier(
    raw_points: float,
    is_starter: bool,
    is_captain: bool,
    config: FantasyConfig | None = None,
) -> float:
    return raw_points * get_multiplier(is_starter, is_captain, config)


@dataclass
class PlayerPoints:
    """One squad member's contribution to a matchday score."""

    player_id: int
    player_name: str
    position: str
    team_name: str
    raw_points: float
    multiplier: float
    final_points: float
    is_starter: bool
    is_captain: bool
    is_captain_sub: bool
    played: bool


@dataclass
class SquadPoints:
    """A squad's computed (not necessarily persisted) matchday score."""

    user_id: str
    squad_id: int
    matchday_id: int
    total_points: float
    player_points: list[PlayerPoints] = field(default_factory=list)


@dataclass
class ScoringRun:
    """Outcome of scoring every squad owner for one matchday."""

    matchday_id: int
    results: list[dict] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def scored(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)


class ScoringEngine:
    """Computes and persists squad points for matchdays."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: FantasyConfig | None = None,
        roster: RosterEngine | None = None,
    ) -> None:
        self.conn = conn
        self.config = config or FantasyConfig()
        self.roster = roster or RosterEngine(conn, self.config)

    def calculate_squad_points(self, user_id: str, matchday_id: int) -> SquadPoints | None:
        """Score the user's current squad against a matchday's stats.

        Returns None (not an error) when the user has no squad.
        """
        squad = self.roster.get_squad_for_user(user_id)
        if squad is None:
            return None
        squad_id = squad["squad_id"]

        ratings: dict[int, float] = {}
        for row in self.conn.execute(SELECT_SQUAD_STATS, (matchday_id, squad_id)):
            if row["player_id"] in ratings:
                logger.warning(
                    "Player %d has several stat rows in matchday %d; "
                    "using the earliest match, ignoring match %d",
                    row["player_id"], matchday_id, row["match_id"],
                )
                continue
            ratings[row["player_id"]] = row["rating"]

        player_points = []
        for m in self.roster.get_members(squad_id):
            played = m["player_id"] in ratings
            raw = calculate_player_points(ratings[m["player_id"]]) if played else 0.0
            multiplier = get_multiplier(m["is_starter"], m["is_captain"], self.config)
            final = round(raw * multiplier, 2) if played else 0.0
            player_points.append(
                PlayerPoints(
                    player_id=m["player_id"],
                    player_name=m["name"],
                    position=m["position"],
                    team_name=m["team_name"],
                    raw_points=raw,
                    multiplier=multiplier,
                    final_points=final,
                    is_starter=m["is_starter"],
                    is_captain=m["is_captain"],
                    is_captain_sub=m["is_captain_sub"],
                    played=played,
                )
            )

        total = round(sum(p.final_points for p in player_points), 2)
        return SquadPoints(
            user_id=user_id,
            squad_id=squad_id,
            matchday_id=matchday_id,
            total_points=total,
            player_points=player_points,
        )

    def persist_squad_points(self, user_id: str, matchday_id: int) -> dict | None:
        """Compute and store the user's points for a matchday.

        Upserts ``matchday_points`` for (user, matchday), then deletes and
        recreates its ``squad_player_points`` children, all in one
        transaction.  Safe to call repeatedly.

        Returns:
            ``{"user_id", "total_points", "player_count"}``, or None when
            the user has no squad.
        """
        with transaction(self.conn):
            if self.conn.execute(
                "SELECT 1 FROM matchdays WHERE matchday_id = ?", (matchday_id,)
            ).fetchone() is None:
                raise MatchdayNotFound(
                    f"Matchday {matchday_id} does not exist", matchday_id=matchday_id
                )

            result = self.calculate_squad_points(user_id, matchday_id)
            if result is None:
                return None

            self.conn.execute(
                UPSERT_MATCHDAY_POINTS,
                {
                    "user_id": user_id,
                    "matchday_id": matchday_id,
                    "squad_id": result.squad_id,
                    "total_points": result.total_points,
                    "calculated_at": datetime.now(timezone.utc).isoformat(),
                },
            )
            points_id = self.conn.execute(
                "SELECT matchday_points_id FROM matchday_points "
                "WHERE user_id = ? AND matchday_id = ?",
                (user_id, matchday_id),
            ).fetchone()[0]

            self.conn.execute(
                "DELETE FROM squad_player_points WHERE matchday_points_id = ?",
                (points_id,),
            )
            for pp in result.player_points:
                self.conn.execute(
                    INSERT_PLAYER_POINTS,
                    {
                        "matchday_points_id": points_id,
                        "player_id": pp.player_id,
                        "raw_points": pp.raw_points,
                        "multiplier": pp.multiplier,
                        "final_points": pp.final_points,
                        "played": int(pp.played),
                    },
                )

        logger.debug(
            "Persisted %.2f points for user %s in matchday %d",
            result.total_points, user_id, matchday_id,
        )
        return {
            "user_id": user_id,
            "total_points": result.total_points,
            "player_count": len(result.player_points),
        }

    def calculate_all_users_points(self, matchday_id: int) -> ScoringRun:
        """Persist points for every user who owns a squad.

        Each user is scored in their own transaction.  A failure is logged
        and recorded in ``ScoringRun.errors`` and the remaining users are
        still processed.
        """
        run = ScoringRun(matchday_id=matchday_id)
        user_ids = [
            r[0]
            for r in self.conn.execute(
                "SELECT DISTINCT user_id FROM squads ORDER BY user_id"
            ).fetchall()
        ]

        for user_id in user_ids:
            try:
                result = self.persist_squad_points(user_id, matchday_id)
            except Exception as e:
                logger.exception(
                    "Scoring failed for user %s in matchday %d", user_id, matchday_id
                )
                run.errors[user_id] = str(e)
                continue
            if result is not None:
                run.results.append(result)

        logger.info(
            "Scored matchday %d: %d users scored, %d failed",
            matchday_id, run.scored, run.failed,
        )
        return run

    def get_matchday_points(self, user_id: str, matchday_id: int) -> dict | None:
        """Return stored points for (user, matchday) with per-player rows."""
        row = self.conn.execute(
            "SELECT * FROM matchday_points WHERE user_id = ? AND matchday_id = ?",
            (user_id, matchday_id),
        ).fetchone()
        if row is None:
            return None

        data = dict(row)
        players = self.conn.execute(
            "SELECT player_id, raw_points, multiplier, final_points, played "
            "FROM squad_player_points WHERE matchday_points_id = ? "
            "ORDER BY player_id",
            (data["matchday_points_id"],),
        ).fetchall()
        data["players"] = [
            {**dict(p), "played": bool(p["played"])} for p in players
        ]
        return data


