"""Shared fixtures: a migrated on-disk database and reference-data factories."""

import logging

import pytest

from fantasy.db import Database
from fantasy.repository import ReferenceRepository


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "test.db")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def conn(db):
    return db.conn


@pytest.fixture
def repo(conn):
    return ReferenceRepository(conn)


@pytest.fixture
def teams(repo):
    """Two teams: 1 = River Plate, 2 = Boca Juniors."""
    repo.upsert_teams([
        {"team_id": 1, "name": "River Plate", "logo": "river.png"},
        {"team_id": 2, "name": "Boca Juniors", "logo": "boca.png"},
    ])


@pytest.fixture
def make_player(repo, teams):
    """Factory inserting a catalog player and returning its dict."""

    def _make(player_id, position="MID", team_id=1, fantasy_price=5.0,
              rating=7.0, name=None):
        data = {
            "player_id": player_id,
            "name": name or f"Player {player_id}",
            "position": position,
            "team_id": team_id,
            "rating": rating,
            "fantasy_price": fantasy_price,
        }
        repo.upsert_player(data)
        return data

    return _make


@pytest.fixture
def make_matchday(repo, teams):
    """Factory inserting a matchday with matches between teams 1 and 2."""

    def _make(matchday_id=1, status="OPEN", n_matches=1, start_date=None, name=None):
        start = start_date or f"2025-03-{matchday_id:02d}"
        matchday = {
            "matchday_id": matchday_id,
            "name": name or f"Fecha {matchday_id}",
            "status": status,
            "start_date": start,
            "end_date": start,
        }
        matches = [
            {
                "match_id": matchday_id * 100 + i,
                "matchday_id": matchday_id,
                "home_team_id": 1 if i % 2 == 0 else 2,
                "away_team_id": 2 if i % 2 == 0 else 1,
                "kickoff": f"{start}T{15 + i:02d}:00:00",
            }
            for i in range(n_matches)
        ]
        repo.upsert_matchday_matches(matchday, matches)
        return matchday

    return _make


@pytest.fixture
def root_logger_snapshot():
    """Restore root handlers and engine logger levels changed by a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    engine_levels = {
        name: logging.getLogger(name).level
        for name in ["fantasy", *logging.root.manager.loggerDict]
        if name == "fantasy" or name.startswith("fantasy.")
    }
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    for name in logging.root.manager.loggerDict:
        if name == "fantasy" or name.startswith("fantasy."):
            logging.getLogger(name).setLevel(engine_levels.get(name, logging.NOTSET))
