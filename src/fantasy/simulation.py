"""Simulated match results and per-player stats for demo matchdays.

Stands in for an ingested stats feed.  Scoring reads ``player_match_stats``
the same way whichever source wrote the rows, so nothing downstream
depends on this module.

Generation is idempotent: players that already have a stat row for a
match are skipped, so ingested stats are never overwritten and repeated
calls add nothing.
"""

import logging
import random
import sqlite3

from fantasy.config import FantasyConfig
from fantasy.db import transaction

logger = logging.getLogger(__name__)

INSERT_STAT = """
    INSERT INTO player_match_stats (
        player_id, match_id, rating, minutes_played,
        goals, assists, yellow_cards, red_cards
    ) VALUES (
        :player_id, :match_id, :rating, :minutes_played,
        :goals, :assists, :yellow_cards, :red_cards
    )
    ON CONFLICT(player_id, match_id) DO NOTHING
"""

# Relative chance of scoring / assisting by position.
GOAL_WEIGHTS = {"GK": 0, "DEF": 1, "MID": 3, "FWD": 6}
ASSIST_WEIGHTS = {"GK": 0, "DEF": 2, "MID": 5, "FWD": 3}

# P(goals = n) for n = 0..5 for one side of a match.
SCORE_WEIGHTS = [25, 35, 22, 11, 5, 2]

DEFAULT_BASE_RATING = 6.3


class StatGenerator:
    """Produces plausible scores and stat lines with a seedable RNG."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: FantasyConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.conn = conn
        self.config = config or FantasyConfig()
        self.rng = rng or random.Random(self.config.simulation_seed)

    def simulate_score(self) -> tuple[int, int]:
        """Return a random (home, away) scoreline."""
        goals = range(len(SCORE_WEIGHTS))
        home = self.rng.choices(goals, weights=SCORE_WEIGHTS)[0]
        away = self.rng.choices(goals, weights=SCORE_WEIGHTS)[0]
        return home, away

    def generate_match_stats(self, match_id: int) -> int:
        """Create stat rows for every player of both teams lacking one.

        Uses the match's current score to hand out goals, so call it after
        the score is final.

        Returns:
            Number of stat rows created.
        """
        with transaction(self.conn):
            match = self.conn.execute(
                "SELECT * FROM matches WHERE match_id = ?", (match_id,)
            ).fetchone()
            if match is None:
                raise ValueError(f"Match {match_id} does not exist")

            existing = {
                r[0]
                for r in self.conn.execute(
                    "SELECT player_id FROM player_match_stats WHERE match_id = ?",
                    (match_id,),
                ).fetchall()
            }

            created = 0
            sides = (
                (match["home_team_id"], match["home_score"], match["away_score"]),
                (match["away_team_id"], match["away_score"], match["home_score"]),
            )
            for team_id, scored, conceded in sides:
                players = [
                    dict(r)
                    for r in self.conn.execute(
                        "SELECT * FROM players WHERE team_id = ? ORDER BY player_id",
                        (team_id,),
                    ).fetchall()
                ]
                if not players:
                    continue

                lines = self._team_stat_lines(match_id, players, scored, conceded)
                for line in lines:
                    if line["player_id"] in existing:
                        continue
                    self.conn.execute(INSERT_STAT, line)
                    created += 1

        logger.debug("Generated %d stat rows for match %d", created, match_id)
        return created

    def _team_stat_lines(
        self, match_id: int, players: list[dict], scored: int, conceded: int
    ) -> list[dict]:
        """Build one stat line per player of a side, sharing out its goals.

        Lines are built for the whole side, including players who already
        have stats, so the RNG sequence does not depend on what exists.
        """
        lines = {
            p["player_id"]: {
                "player_id": p["player_id"],
                "match_id": match_id,
                "minutes_played": self.rng.choice((90, 90, 90, 75, 60, 30, 15)),
                "goals": 0,
                "assists": 0,
                "yellow_cards": 1 if self.rng.random() < 0.12 else 0,
                "red_cards": 1 if self.rng.random() < 0.02 else 0,
            }
            for p in players
        }

        goal_weights = [GOAL_WEIGHTS[p["position"]] for p in players]
        assist_weights = [ASSIST_WEIGHTS[p["position"]] for p in players]
        for _ in range(scored):
            if sum(goal_weights):
                scorer = self.rng.choices(players, weights=goal_weights)[0]
                lines[scorer["player_id"]]["goals"] += 1
            if sum(assist_weights) and self.rng.random() < 0.7:
                assister = self.rng.choices(players, weights=assist_weights)[0]
                lines[assister["player_id"]]["assists"] += 1

        for p in players:
            line = lines[p["player_id"]]
            base = p["rating"] if p["rating"] is not None else DEFAULT_BASE_RATING
            rating = self.rng.gauss(base, 1.0)
            rating += 0.8 * line["goals"] + 0.5 * line["assists"]
            rating -= 0.5 * line["yellow_cards"] + 1.5 * line["red_cards"]
            if conceded == 0 and p["position"] in ("GK", "DEF"):
                rating += 0.5
            line["rating"] = round(min(10.0, max(0.0, rating)), 1)

        return list(lines.values())
