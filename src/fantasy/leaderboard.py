"""Leaderboard: users ranked by cumulative stored matchday points.

Only users with at least one ``matchday_points`` row (in the requested
matchday range) appear.  Equal totals share a rank and the next distinct
total skips ahead (1, 1, 3).  Within a tie, entries are ordered by user id
so pages are stable.
"""

import logging
import math
import sqlite3
from dataclasses import dataclass, field

from fantasy.config import FantasyConfig

logger = logging.getLogger(__name__)

UNNAMED_USER = "Unnamed"


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: str
    user_name: str
    user_image: str | None
    total_points: float
    matchday_breakdown: list[dict] = field(default_factory=list)


@dataclass
class LeaderboardPage:
    data: list[LeaderboardEntry]
    total: int
    page: int
    page_size: int
    total_pages: int


class Leaderboard:
    """Read-only ranking over persisted matchday points."""

    def __init__(
        self, conn: sqlite3.Connection, config: FantasyConfig | None = None
    ) -> None:
        self.conn = conn
        self.config = config or FantasyConfig()

    def get_leaderboard(
        self,
        page: int = 1,
        page_size: int | None = None,
        start_matchday_id: int | None = None,
        end_matchday_id: int | None = None,
    ) -> LeaderboardPage:
        """Return one page of the ranking.

        Args:
            page: 1-based page number.  Pages past the end are empty.
            page_size: Entries per page; defaults to
                ``config.leaderboard_page_size``.
            start_matchday_id, end_matchday_id: Optional inclusive range
                restricting which matchdays count towards the totals.
        """
        if page_size is None:
            page_size = self.config.leaderboard_page_size
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        ranked = self._ranked(start_matchday_id, end_matchday_id)
        total = len(ranked)
        skip = (page - 1) * page_size
        return LeaderboardPage(
            data=ranked[skip:skip + page_size],
            total=total,
            page=page,
            page_size=page_size,
            total_pages=math.ceil(total / page_size),
        )

    def get_user_rank(
        self,
        user_id: str,
        start_matchday_id: int | None = None,
        end_matchday_id: int | None = None,
    ) -> LeaderboardEntry | None:
        """Return the user's entry, or None if they have no points yet."""
        for entry in self._ranked(start_matchday_id, end_matchday_id):
            if entry.user_id == user_id:
                return entry
        return None

    def _ranked(
        self, start_matchday_id: int | None, end_matchday_id: int | None
    ) -> list[LeaderboardEntry]:
        clauses = []
        params: list[int] = []
        if start_matchday_id is not None:
            clauses.append("mp.matchday_id >= ?")
            params.append(start_matchday_id)
        if end_matchday_id is not None:
            clauses.append("mp.matchday_id <= ?")
            params.append(end_matchday_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        rows = self.conn.execute(
            f"""
            SELECT mp.user_id, mp.matchday_id, mp.total_points,
                   u.name AS user_name, u.image AS user_image
            FROM matchday_points mp
            LEFT JOIN users u ON u.user_id = mp.user_id
            {where}
            ORDER BY mp.user_id, mp.matchday_id
            """,
            params,
        ).fetchall()

        entries: dict[str, LeaderboardEntry] = {}
        sums: dict[str, float] = {}
        for r in rows:
            entry = entries.get(r["user_id"])
            if entry is None:
                entry = entries[r["user_id"]] = LeaderboardEntry(
                    rank=0,
                    user_id=r["user_id"],
                    user_name=r["user_name"] or UNNAMED_USER,
                    user_image=r["user_image"],
                    total_points=0.0,
                )
                sums[r["user_id"]] = 0.0
            sums[r["user_id"]] += r["total_points"]
            entry.matchday_breakdown.append(
                {"matchday_id": r["matchday_id"], "points": round(r["total_points"], 2)}
            )

        for user_id, entry in entries.items():
            entry.total_points = round(sums[user_id], 2)

        ranked = sorted(entries.values(), key=lambda e: (-e.total_points, e.user_id))
        for i, entry in enumerate(ranked):
            if i > 0 and entry.total_points == ranked[i - 1].total_points:
                entry.rank = ranked[i - 1].rank
            else:
                entry.rank = i + 1

        logger.debug("Ranked %d users", len(ranked))
        return ranked
