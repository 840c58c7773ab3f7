"""Unit tests for the Pydantic reference-data and command models.

Tests field constraints, cross-field validators, and soft warnings.
"""

import warnings

import pytest
from pydantic import ValidationError

from fantasy.models import (
    AdvanceMatchdayCommand,
    BuyPlayerCommand,
    CreateSquadCommand,
    MatchdayModel,
    MatchModel,
    PlayerMatchStatModel,
    PlayerModel,
    SetCaptainCommand,
    SwapPlayersCommand,
    TeamModel,
    UpdateFormationCommand,
    UserModel,
)

# ---------------------------------------------------------------------------
# Fixtures: minimal valid dicts for each model
# ---------------------------------------------------------------------------


@pytest.fixture
def valid_player() -> dict:
    return {
        "player_id": 10,
        "name": "Enzo Pérez",
        "position": "MID",
        "team_id": 1,
        "rating": 7.2,
        "fantasy_price": 8.5,
    }


@pytest.fixture
def valid_match() -> dict:
    return {
        "match_id": 100,
        "matchday_id": 1,
        "home_team_id": 1,
        "away_team_id": 2,
        "kickoff": "2025-03-01T18:00:00",
    }


@pytest.fixture
def valid_stat() -> dict:
    return {
        "player_id": 10,
        "match_id": 100,
        "rating": 7.5,
        "minutes_played": 90,
        "goals": 1,
        "assists": 0,
        "yellow_cards": 0,
        "red_cards": 0,
    }


class TestTeamAndUserModels:
    def test_team_valid(self):
        """A team with id and name passes; logo defaults to empty."""
        m = TeamModel.model_validate({"team_id": 1, "name": "River Plate"})
        assert m.logo == ""

    def test_team_rejects_zero_id(self):
        """team_id must be positive."""
        with pytest.raises(ValidationError):
            TeamModel.model_validate({"team_id": 0, "name": "X"})

    def test_user_optional_display_fields(self):
        """name and image are optional."""
        m = UserModel.model_validate({"user_id": "u1"})
        assert m.name is None and m.image is None


class TestPlayerModel:
    def test_valid(self, valid_player):
        """A complete player passes without warnings."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            m = PlayerModel.model_validate(valid_player)
        assert m.position == "MID"

    def test_rejects_unknown_position(self, valid_player):
        """Position must be GK, DEF, MID or FWD."""
        valid_player["position"] = "WING"
        with pytest.raises(ValidationError):
            PlayerModel.model_validate(valid_player)

    def test_rejects_non_positive_price(self, valid_player):
        """fantasy_price must be > 0."""
        valid_player["fantasy_price"] = 0
        with pytest.raises(ValidationError):
            PlayerModel.model_validate(valid_player)

    def test_rejects_rating_out_of_range(self, valid_player):
        """rating is bounded to 0-10."""
        valid_player["rating"] = 10.5
        with pytest.raises(ValidationError):
            PlayerModel.model_validate(valid_player)

    def test_rating_is_optional(self, valid_player):
        """An unrated player is valid."""
        valid_player["rating"] = None
        assert PlayerModel.model_validate(valid_player).rating is None

    def test_warns_on_unusual_price(self, valid_player):
        """A $20M price passes but warns."""
        valid_player["fantasy_price"] = 20.0
        with pytest.warns(UserWarning, match="Unusual fantasy_price"):
            PlayerModel.model_validate(valid_player)


class TestMatchdayModels:
    def test_matchday_defaults_to_open(self):
        """Status defaults to OPEN."""
        m = MatchdayModel.model_validate({
            "matchday_id": 1, "name": "Fecha 1",
            "start_date": "2025-03-01", "end_date": "2025-03-02",
        })
        assert m.status == "OPEN"

    def test_matchday_rejects_end_before_start(self):
        """end_date must not precede start_date."""
        with pytest.raises(ValidationError, match="before start_date"):
            MatchdayModel.model_validate({
                "matchday_id": 1, "name": "Fecha 1",
                "start_date": "2025-03-02", "end_date": "2025-03-01",
            })

    def test_match_valid(self, valid_match):
        """A match defaults to SCHEDULED with 0-0."""
        m = MatchModel.model_validate(valid_match)
        assert (m.status, m.home_score, m.away_score) == ("SCHEDULED", 0, 0)

    def test_match_rejects_same_teams(self, valid_match):
        """A team cannot play itself."""
        valid_match["away_team_id"] = 1
        with pytest.raises(ValidationError, match="identical"):
            MatchModel.model_validate(valid_match)

    def test_match_rejects_negative_score(self, valid_match):
        """Scores are non-negative."""
        valid_match["home_score"] = -1
        with pytest.raises(ValidationError):
            MatchModel.model_validate(valid_match)


class TestPlayerMatchStatModel:
    def test_valid(self, valid_stat):
        """A normal stat line passes."""
        assert PlayerMatchStatModel.model_validate(valid_stat).rating == 7.5

    def test_rejects_rating_above_ten(self, valid_stat):
        """rating is bounded to 0-10."""
        valid_stat["rating"] = 11
        with pytest.raises(ValidationError):
            PlayerMatchStatModel.model_validate(valid_stat)

    def test_rejects_two_red_cards(self, valid_stat):
        """At most one red card."""
        valid_stat["red_cards"] = 2
        with pytest.raises(ValidationError):
            PlayerMatchStatModel.model_validate(valid_stat)

    def test_warns_on_goal_without_minutes(self, valid_stat):
        """Goals with 0 minutes pass but warn."""
        valid_stat["minutes_played"] = 0
        with pytest.warns(UserWarning, match="0 minutes"):
            PlayerMatchStatModel.model_validate(valid_stat)


class TestCommands:
    def test_buy_command(self):
        """A buy command carries user and player ids and mutates squads."""
        cmd = BuyPlayerCommand.model_validate({"user_id": "u1", "player_id": 7})
        assert cmd.player_id == 7
        assert cmd.mutates_squad is True

    def test_rejects_empty_user(self):
        """user_id must be non-empty."""
        with pytest.raises(ValidationError):
            BuyPlayerCommand.model_validate({"user_id": "", "player_id": 7})

    def test_rejects_unknown_formation(self):
        """Formation commands validate the code at the boundary."""
        with pytest.raises(ValidationError, match="formation must be one of"):
            CreateSquadCommand.model_validate({"user_id": "u1", "formation": "4-2-4"})
        with pytest.raises(ValidationError):
            UpdateFormationCommand.model_validate({"user_id": "u1", "formation": "2-3-5"})

    def test_set_captain_role(self):
        """Role is captain or captainSub."""
        cmd = SetCaptainCommand.model_validate(
            {"user_id": "u1", "player_id": 3, "role": "captainSub"}
        )
        assert cmd.role == "captainSub"
        with pytest.raises(ValidationError):
            SetCaptainCommand.model_validate(
                {"user_id": "u1", "player_id": 3, "role": "vice"}
            )

    def test_swap_requires_both_ids(self):
        """A swap needs two player ids."""
        with pytest.raises(ValidationError):
            SwapPlayersCommand.model_validate({"user_id": "u1", "player_id_a": 1})

    def test_advance_is_not_a_squad_mutation(self):
        """The operator command is exempt from the squad lock."""
        cmd = AdvanceMatchdayCommand.model_validate(
            {"matchday_id": 1, "target_status": "LOCK"}
        )
        assert cmd.mutates_squad is False
        with pytest.raises(ValidationError):
            AdvanceMatchdayCommand.model_validate(
                {"matchday_id": 1, "target_status": "DONE"}
            )
