"""Tests for command dispatch and the matchday lock guard."""

import sqlite3

import pytest
from pydantic import ValidationError

from fantasy.config import FantasyConfig
from fantasy.db import Database
from fantasy.exceptions import MatchdayLocked, SquadNotFound
from fantasy.matchday import AdvanceResult, MatchdayService
from fantasy.models import (
    AdvanceMatchdayCommand,
    BuyPlayerCommand,
    CreateSquadCommand,
    SetCaptainCommand,
)
from fantasy.service import COMMANDS, FantasyService, open_service
from fantasy.transfers import TransferResult


@pytest.fixture
def service(conn):
    return FantasyService(conn)


@pytest.fixture
def squad(service, make_player):
    """u1 owns players 1 (FWD) and 2 (MID), both starters."""
    make_player(1, position="FWD", fantasy_price=10.0)
    make_player(2, position="MID", fantasy_price=8.0)
    service.dispatch("buy_player", {"user_id": "u1", "player_id": 1})
    service.dispatch("buy_player", {"user_id": "u1", "player_id": 2})
    return service.roster.get_squad_for_user("u1")["squad_id"]


class TestDispatch:
    def test_every_command_is_registered(self):
        assert set(COMMANDS) == {
            "create_squad", "add_player", "remove_player", "toggle_starter",
            "swap_players", "set_captain", "update_formation", "buy_player",
            "sell_player", "advance_matchday",
        }

    def test_unknown_command(self, service):
        with pytest.raises(ValueError, match="Unknown command"):
            service.dispatch("trade_player", {})

    def test_invalid_payload(self, service):
        with pytest.raises(ValidationError):
            service.dispatch("buy_player", {"user_id": "u1", "player_id": -3})

    def test_invalid_formation(self, service):
        with pytest.raises(ValidationError):
            service.dispatch("create_squad", {"user_id": "u1", "formation": "2-2-6"})
        assert service.roster.get_squad_for_user("u1") is None

    def test_buy_returns_transfer_result(self, service, make_player):
        make_player(1, fantasy_price=7.5)
        result = service.dispatch("buy_player", {"user_id": "u1", "player_id": 1})
        assert isinstance(result, TransferResult)
        assert result.remaining_budget == 92.5

    def test_squad_commands_resolve_user(self, service, squad):
        service.dispatch("set_captain", {"user_id": "u1", "player_id": 2, "role": "captain"})
        service.dispatch("toggle_starter", {"user_id": "u1", "player_id": 1})
        members = {m["player_id"]: m for m in service.roster.get_members(squad)}
        assert members[2]["is_captain"]
        assert not members[1]["is_starter"]

    def test_formation_change(self, service, squad):
        change = service.dispatch("update_formation", {"user_id": "u1", "formation": "4-4-2"})
        assert service.roster.get_squad(squad)["formation"] == "4-4-2"
        assert change is not None

    def test_user_without_squad(self, service, make_player):
        make_player(1)
        with pytest.raises(SquadNotFound):
            service.dispatch("add_player", {"user_id": "u9", "player_id": 1})

    def test_sell(self, service, squad):
        result = service.dispatch("sell_player", {"user_id": "u1", "player_id": 1})
        assert result.refund == 9.0
        assert [m["player_id"] for m in service.roster.get_members(squad)] == [2]


class TestLockGuard:
    @pytest.mark.parametrize("status", ["LOCK", "LIVE", "RESULTS"])
    def test_mutations_rejected_when_locked(self, service, squad, make_player, make_matchday, status):
        make_player(3, position="DEF")
        make_matchday(1, status=status)
        before = service.roster.get_members(squad)

        for command in (
            BuyPlayerCommand(user_id="u1", player_id=3),
            SetCaptainCommand(user_id="u1", player_id=1, role="captain"),
            CreateSquadCommand(user_id="u2", formation="4-3-3"),
        ):
            with pytest.raises(MatchdayLocked):
                service.execute(command)

        assert service.roster.get_members(squad) == before
        assert service.roster.get_squad_for_user("u2") is None

    def test_locked_error_names_matchday(self, service, squad, make_matchday):
        make_matchday(1, status="LIVE", name="Fecha 7")
        with pytest.raises(MatchdayLocked) as exc_info:
            service.dispatch("sell_player", {"user_id": "u1", "player_id": 1})
        assert exc_info.value.status == "LIVE"
        assert exc_info.value.matchday_name == "Fecha 7"

    def test_allowed_while_open(self, service, make_player, make_matchday):
        make_matchday(1, status="OPEN")
        make_player(1)
        assert service.dispatch("buy_player", {"user_id": "u1", "player_id": 1}).is_starter

    def test_advance_is_not_guarded(self, service, make_matchday):
        make_matchday(1, status="LOCK", n_matches=0)
        result = service.execute(AdvanceMatchdayCommand(matchday_id=1, target_status="LIVE"))
        assert isinstance(result, AdvanceResult)
        assert result.new_status == "LIVE"

    def test_reopens_after_results_with_next_matchday(self, service, make_player, make_matchday):
        make_matchday(1, status="LIVE", n_matches=0)
        make_matchday(2, status="OPEN", n_matches=0)
        service.dispatch("advance_matchday", {"matchday_id": 1, "target_status": "RESULTS"})
        make_player(1)
        service.dispatch("buy_player", {"user_id": "u1", "player_id": 1})
        assert service.roster.get_squad_for_user("u1") is not None


class TestConcurrentLock:
    @pytest.fixture
    def operator(self, db):
        """A second connection, as an operator advancing matchdays would use."""
        other = Database(db.db_path)
        other.connect()
        other.conn.execute("PRAGMA busy_timeout = 0")
        yield other
        other.close()

    def test_lock_cannot_land_between_check_and_write(
        self, service, operator, make_player, make_matchday, monkeypatch
    ):
        """An OPEN -> LOCK from another connection waits for the buy to commit."""
        make_player(1)
        make_player(2)
        make_matchday(1, status="OPEN", n_matches=0)
        ops = MatchdayService(operator.conn)
        attempts = []
        original = service.matchdays.ensure_unlocked

        def check_then_race():
            original()
            try:
                ops.advance(1, "LOCK")
            except sqlite3.OperationalError as e:
                attempts.append(str(e))
            else:
                attempts.append("committed")

        monkeypatch.setattr(service.matchdays, "ensure_unlocked", check_then_race)
        service.dispatch("buy_player", {"user_id": "u1", "player_id": 1})
        monkeypatch.undo()

        assert len(attempts) == 1 and "locked" in attempts[0]
        assert service.matchdays.get_matchday(1)["status"] == "OPEN"

        ops.advance(1, "LOCK")
        with pytest.raises(MatchdayLocked):
            service.dispatch("buy_player", {"user_id": "u1", "player_id": 2})
        squad_id = service.roster.get_squad_for_user("u1")["squad_id"]
        assert [m["player_id"] for m in service.roster.get_members(squad_id)] == [1]

    def test_lock_committed_first_rejects_command(
        self, service, operator, make_player, make_matchday
    ):
        make_player(1)
        make_matchday(1, status="OPEN", n_matches=0)
        MatchdayService(operator.conn).advance(1, "LOCK")
        with pytest.raises(MatchdayLocked):
            service.dispatch("buy_player", {"user_id": "u1", "player_id": 1})
        assert service.roster.get_squad_for_user("u1") is None
        assert not service.conn.in_transaction


@pytest.mark.usefixtures("root_logger_snapshot")
class TestOpenService:
    def test_creates_database_and_log(self, tmp_path):
        config = FantasyConfig(
            data_dir=str(tmp_path / "data"),
            db_path=str(tmp_path / "data" / "league.db"),
        )
        with open_service(config) as svc:
            assert isinstance(svc, FantasyService)
            assert svc.config is config
            svc.dispatch("create_squad", {"user_id": "u1", "formation": "4-4-2"})
            conn = svc.conn
        assert (tmp_path / "data" / "league.db").exists()
        assert len(list((tmp_path / "data" / "logs").glob("fantasy-*.log"))) == 1
        with pytest.raises(sqlite3.ProgrammingError):
            conn.execute("SELECT 1")

    def test_reopening_keeps_state(self, tmp_path):
        config = FantasyConfig(
            data_dir=str(tmp_path), db_path=str(tmp_path / "league.db")
        )
        with open_service(config) as svc:
            svc.dispatch("create_squad", {"user_id": "u1", "formation": "3-5-2"})
        with open_service(config) as svc:
            assert svc.roster.get_squad_for_user("u1")["formation"] == "3-5-2"
