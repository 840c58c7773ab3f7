"""Data access layer with UPSERT operations for reference data tables.

Provides ReferenceRepository with insert-or-update semantics for teams,
players, users, matchdays, matches and player_match_stats.  Each UPSERT
uses INSERT ... ON CONFLICT DO UPDATE SET (not INSERT OR REPLACE) so
rows referenced by squads are modified in place, never deleted.

Batch methods wrap multiple upserts in a single atomic transaction.
Read methods return dicts (via sqlite3.Row) for easy consumption.
"""

import math
import sqlite3

from fantasy.db import transaction
from fantasy.formations import POSITIONS

# ---------------------------------------------------------------------------
# UPSERT SQL constants
# ---------------------------------------------------------------------------

UPSERT_TEAM = """
    INSERT INTO teams (team_id, name, logo)
    VALUES (:team_id, :name, :logo)
    ON CONFLICT(team_id) DO UPDATE SET
        name = excluded.name,
        logo = excluded.logo
"""

UPSERT_PLAYER = """
    INSERT INTO players (
        player_id, name, position, team_id, rating, fantasy_price
    ) VALUES (
        :player_id, :name, :position, :team_id, :rating, :fantasy_price
    )
    ON CONFLICT(player_id) DO UPDATE SET
        name          = excluded.name,
        position      = excluded.position,
        team_id       = excluded.team_id,
        rating        = excluded.rating,
        fantasy_price = excluded.fantasy_price
"""

UPSERT_USER = """
    INSERT INTO users (user_id, name, image)
    VALUES (:user_id, :name, :image)
    ON CONFLICT(user_id) DO UPDATE SET
        name  = excluded.name,
        image = excluded.image
"""

# status is deliberately not updated: the lifecycle owns it after insert.
UPSERT_MATCHDAY = """
    INSERT INTO matchdays (matchday_id, name, status, start_date, end_date)
    VALUES (:matchday_id, :name, :status, :start_date, :end_date)
    ON CONFLICT(matchday_id) DO UPDATE SET
        name       = excluded.name,
        start_date = excluded.start_date,
        end_date   = excluded.end_date
"""

UPSERT_MATCH = """
    INSERT INTO matches (
        match_id, matchday_id, home_team_id, away_team_id,
        home_score, away_score, status, kickoff
    ) VALUES (
        :match_id, :matchday_id, :home_team_id, :away_team_id,
        :home_score, :away_score, :status, :kickoff
    )
    ON CONFLICT(match_id) DO UPDATE SET
        matchday_id  = excluded.matchday_id,
        home_team_id = excluded.home_team_id,
        away_team_id = excluded.away_team_id,
        kickoff      = excluded.kickoff
"""

# Ingested stats win over anything simulated earlier.
UPSERT_PLAYER_MATCH_STAT = """
    INSERT INTO player_match_stats (
        player_id, match_id, rating, minutes_played,
        goals, assists, yellow_cards, red_cards
    ) VALUES (
        :player_id, :match_id, :rating, :minutes_played,
        :goals, :assists, :yellow_cards, :red_cards
    )
    ON CONFLICT(player_id, match_id) DO UPDATE SET
        rating         = excluded.rating,
        minutes_played = excluded.minutes_played,
        goals          = excluded.goals,
        assists        = excluded.assists,
        yellow_cards   = excluded.yellow_cards,
        red_cards      = excluded.red_cards
"""


# ---------------------------------------------------------------------------
# Player catalog SQL
# ---------------------------------------------------------------------------

DEFAULT_PAGE_SIZE = 20

_CATALOG_FROM = """
    FROM players p
    JOIN teams t ON t.team_id = p.team_id
"""

SELECT_CATALOG = """
    SELECT
        p.player_id, p.name, p.position, p.rating, p.fantasy_price,
        p.team_id, t.name AS team_name, t.logo AS team_logo
""" + _CATALOG_FROM

COUNT_CATALOG = "SELECT COUNT(*)" + _CATALOG_FROM

# Unrated players sort last under rating (NULL is lowest in SQLite).
CATALOG_ORDER = {
    "rating": "p.rating DESC, p.player_id",
    "value": "p.fantasy_price DESC, p.player_id",
    "name": "p.name COLLATE NOCASE, p.player_id",
}

SELECT_TEAMS = "SELECT team_id, name, logo FROM teams ORDER BY name, team_id"


# ---------------------------------------------------------------------------
# Repository class
# ---------------------------------------------------------------------------

class ReferenceRepository:
    """Data access layer for teams, players, fixtures and match stats.

    Receives a raw ``sqlite3.Connection`` (not a Database instance) so
    tests can pass any connection.

    Write methods run inside ``transaction(self.conn)`` for automatic
    commit on success / rollback on exception.  Exceptions
    (IntegrityError, OperationalError) are NOT caught -- they propagate
    to callers.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ------------------------------------------------------------------
    # Single-row UPSERT methods
    # ------------------------------------------------------------------

    def upsert_team(self, data: dict) -> None:
        """Insert or update a team record."""
        with transaction(self.conn):
            self.conn.execute(UPSERT_TEAM, {"logo": "", **data})

    def upsert_player(self, data: dict) -> None:
        """Insert or update a player record."""
        with transaction(self.conn):
            self.conn.execute(UPSERT_PLAYER, {"rating": None, **data})

    def upsert_user(self, data: dict) -> None:
        """Insert or update a user's display record."""
        with transaction(self.conn):
            self.conn.execute(UPSERT_USER, {"name": None, "image": None, **data})

    def upsert_matchday(self, data: dict) -> None:
        """Insert or update a matchday record."""
        with transaction(self.conn):
            self.conn.execute(UPSERT_MATCHDAY, {"status": "OPEN", **data})

    def upsert_match(self, data: dict) -> None:
        """Insert or update a match record."""
        with transaction(self.conn):
            self.conn.execute(UPSERT_MATCH, _match_defaults(data))

    def upsert_player_match_stat(self, data: dict) -> None:
        """Insert or update one player's stats for one match."""
        with transaction(self.conn):
            self.conn.execute(UPSERT_PLAYER_MATCH_STAT, _stat_defaults(data))

    # ------------------------------------------------------------------
    # Batch UPSERT methods (atomic transactions)
    # ------------------------------------------------------------------

    def upsert_teams(self, rows: list[dict]) -> None:
        """Atomically upsert multiple teams."""
        with transaction(self.conn):
            for row in rows:
                self.conn.execute(UPSERT_TEAM, {"logo": "", **row})

    def upsert_players(self, rows: list[dict]) -> None:
        """Atomically upsert multiple players."""
        with transaction(self.conn):
            for row in rows:
                self.conn.execute(UPSERT_PLAYER, {"rating": None, **row})

    def upsert_users(self, rows: list[dict]) -> None:
        """Atomically upsert multiple users."""
        with transaction(self.conn):
            for row in rows:
                self.conn.execute(
                    UPSERT_USER, {"name": None, "image": None, **row}
                )

    def upsert_matchday_matches(
        self, matchday_data: dict, matches_data: list[dict]
    ) -> None:
        """Atomically upsert a matchday and all its matches."""
        with transaction(self.conn):
            self.conn.execute(UPSERT_MATCHDAY, {"status": "OPEN", **matchday_data})
            for match_data in matches_data:
                self.conn.execute(UPSERT_MATCH, _match_defaults(match_data))

    def upsert_player_match_stats(self, rows: list[dict]) -> None:
        """Atomically upsert multiple player stat rows."""
        with transaction(self.conn):
            for row in rows:
                self.conn.execute(UPSERT_PLAYER_MATCH_STAT, _stat_defaults(row))

    # ------------------------------------------------------------------
    # Read methods
    # ------------------------------------------------------------------

    def get_team(self, team_id: int) -> dict | None:
        """Return a team as a dict, or None if not found."""
        row = self.conn.execute(
            "SELECT * FROM teams WHERE team_id = ?", (team_id,)
        ).fetchone()
        return dict(row) if row is not None else None

    def get_player(self, player_id: int) -> dict | None:
        """Return a player (with team name) as a dict, or None if not found."""
        row = self.conn.execute(
            "SELECT p.*, t.name AS team_name FROM players p "
            "JOIN teams t ON t.team_id = p.team_id "
            "WHERE p.player_id = ?",
            (player_id,),
        ).fetchone()
        return dict(row) if row is not None else None

    def get_team_players(self, team_id: int) -> list[dict]:
        """Return all players of a team, ordered by player_id."""
        rows = self.conn.execute(
            "SELECT * FROM players WHERE team_id = ? ORDER BY player_id",
            (team_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def get_user(self, user_id: str) -> dict | None:
        """Return a user's display record, or None if not found."""
        row = self.conn.execute(
            "SELECT * FROM users WHERE user_id = ?", (user_id,)
        ).fetchone()
        return dict(row) if row is not None else None

    def get_match(self, match_id: int) -> dict | None:
        """Return a match as a dict, or None if not found."""
        row = self.conn.execute(
            "SELECT * FROM matches WHERE match_id = ?", (match_id,)
        ).fetchone()
        return dict(row) if row is not None else None

    def get_player_match_stats(self, match_id: int) -> list[dict]:
        """Return all stat rows for a match, ordered by player_id."""
        rows = self.conn.execute(
            "SELECT * FROM player_match_stats WHERE match_id = ? "
            "ORDER BY player_id",
            (match_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def count_players(self) -> int:
        """Return the total number of player records."""
        return self.conn.execute("SELECT COUNT(*) FROM players").fetchone()[0]

    def list_teams(self) -> list[dict]:
        """Return every team ordered by name, for catalog filters."""
        return [dict(r) for r in self.conn.execute(SELECT_TEAMS).fetchall()]

    def search_players(
        self,
        search: str | None = None,
        position: str | None = None,
        team_id: int | None = None,
        sort_by: str = "rating",
        page: int = 1,
        page_size: int | None = None,
    ) -> dict:
        """Browse the player catalog, one page at a time.

        Args:
            search: Case-insensitive substring of the player or team name.
            position: Restrict to one of GK, DEF, MID, FWD.
            team_id: Restrict to one team.
            sort_by: ``rating`` (highest first), ``value`` (most
                expensive first) or ``name`` (alphabetical).
            page: 1-based page number.  Pages past the end are empty.
            page_size: Players per page, default ``DEFAULT_PAGE_SIZE``.

        Returns:
            Dict with ``data`` (player dicts with team name and logo),
            ``total``, ``page``, ``page_size`` and ``total_pages``.
        """
        if page_size is None:
            page_size = DEFAULT_PAGE_SIZE
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")
        if sort_by not in CATALOG_ORDER:
            raise ValueError(f"sort_by must be one of {', '.join(CATALOG_ORDER)}")
        if position is not None and position not in POSITIONS:
            raise ValueError(f"position must be one of {', '.join(POSITIONS)}")

        clauses = []
        params: list = []
        if search:
            pattern = "%" + _escape_like(search) + "%"
            clauses.append(
                "(p.name LIKE ? ESCAPE '\\' OR t.name LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern])
        if position is not None:
            clauses.append("p.position = ?")
            params.append(position)
        if team_id is not None:
            clauses.append("p.team_id = ?")
            params.append(team_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""

        total = self.conn.execute(COUNT_CATALOG + where, params).fetchone()[0]
        rows = self.conn.execute(
            SELECT_CATALOG + where
            + f" ORDER BY {CATALOG_ORDER[sort_by]} LIMIT ? OFFSET ?",
            [*params, page_size, (page - 1) * page_size],
        ).fetchall()
        return {
            "data": [dict(r) for r in rows],
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size),
        }


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _match_defaults(data: dict) -> dict:
    return {"home_score": 0, "away_score": 0, "status": "SCHEDULED", **data}


def _stat_defaults(data: dict) -> dict:
    return {
        "minutes_played": 0,
        "goals": 0,
        "assists": 0,
        "yellow_cards": 0,
        "red_cards": 0,
        **data,
    }
