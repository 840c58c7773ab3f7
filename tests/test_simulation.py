"""Tests for simulated match scores and player stat lines."""

import random

import pytest

from fantasy.models import PlayerMatchStatModel
from fantasy.simulation import SCORE_WEIGHTS, StatGenerator


@pytest.fixture
def squads_of_players(make_player):
    """Eleven players per team across all positions."""
    pid = 1
    for team_id in (1, 2):
        for position, n in (("GK", 1), ("DEF", 4), ("MID", 3), ("FWD", 3)):
            for _ in range(n):
                make_player(pid, position=position, team_id=team_id)
                pid += 1


@pytest.fixture
def generator(conn):
    return StatGenerator(conn, rng=random.Random(7))


def finish(conn, match_id, home, away):
    with conn:
        conn.execute(
            "UPDATE matches SET home_score = ?, away_score = ?, status = 'FINISHED' "
            "WHERE match_id = ?",
            (home, away, match_id),
        )


class TestSimulateScore:
    def test_scores_within_table(self, generator):
        for _ in range(50):
            home, away = generator.simulate_score()
            assert 0 <= home < len(SCORE_WEIGHTS)
            assert 0 <= away < len(SCORE_WEIGHTS)

    def test_seeded_is_reproducible(self, conn):
        a = StatGenerator(conn, rng=random.Random(3))
        b = StatGenerator(conn, rng=random.Random(3))
        assert [a.simulate_score() for _ in range(10)] == [
            b.simulate_score() for _ in range(10)
        ]


class TestGenerateMatchStats:
    def test_one_row_per_player(self, conn, repo, generator, squads_of_players, make_matchday):
        make_matchday(1)
        finish(conn, 100, 2, 1)
        assert generator.generate_match_stats(100) == 22
        assert len(repo.get_player_match_stats(100)) == 22

    def test_rows_are_valid_stat_lines(self, conn, repo, generator, squads_of_players, make_matchday):
        make_matchday(1)
        finish(conn, 100, 3, 0)
        generator.generate_match_stats(100)
        for row in repo.get_player_match_stats(100):
            PlayerMatchStatModel.model_validate(row)

    def test_goals_match_score(self, conn, repo, generator, squads_of_players, make_matchday):
        """The home side's goals add up to its score."""
        make_matchday(1)
        finish(conn, 100, 3, 1)
        generator.generate_match_stats(100)
        stats = {r["player_id"]: r for r in repo.get_player_match_stats(100)}
        home_goals = sum(stats[pid]["goals"] for pid in range(1, 12))
        away_goals = sum(stats[pid]["goals"] for pid in range(12, 23))
        assert (home_goals, away_goals) == (3, 1)

    def test_idempotent(self, conn, repo, generator, squads_of_players, make_matchday):
        """A second call creates nothing and changes nothing."""
        make_matchday(1)
        finish(conn, 100, 1, 1)
        generator.generate_match_stats(100)
        before = repo.get_player_match_stats(100)
        assert generator.generate_match_stats(100) == 0
        assert repo.get_player_match_stats(100) == before

    def test_existing_rows_are_kept(self, conn, repo, generator, squads_of_players, make_matchday):
        """Players with ingested stats are skipped."""
        make_matchday(1)
        finish(conn, 100, 0, 0)
        repo.upsert_player_match_stat({"player_id": 1, "match_id": 100, "rating": 9.9})
        assert generator.generate_match_stats(100) == 21
        ratings = {r["player_id"]: r["rating"] for r in repo.get_player_match_stats(100)}
        assert ratings[1] == 9.9

    def test_unknown_match(self, generator):
        with pytest.raises(ValueError, match="does not exist"):
            generator.generate_match_stats(999)
