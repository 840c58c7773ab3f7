"""Pydantic v2 validation models for reference data and engine commands.

Re-exports all model classes for convenient import::

    from fantasy.models import PlayerModel, BuyPlayerCommand, ...
"""

from .commands import (
    AddPlayerCommand,
    AdvanceMatchdayCommand,
    BuyPlayerCommand,
    CreateSquadCommand,
    RemovePlayerCommand,
    SellPlayerCommand,
    SetCaptainCommand,
    SwapPlayersCommand,
    ToggleStarterCommand,
    UpdateFormationCommand,
)
from .matchday import MatchdayModel, MatchModel
from .player import PlayerModel
from .player_match_stat import PlayerMatchStatModel
from .team import TeamModel, UserModel

__all__ = [
    "TeamModel",
    "UserModel",
    "PlayerModel",
    "MatchdayModel",
    "MatchModel",
    "PlayerMatchStatModel",
    "CreateSquadCommand",
    "AddPlayerCommand",
    "RemovePlayerCommand",
    "ToggleStarterCommand",
    "SwapPlayersCommand",
    "SetCaptainCommand",
    "UpdateFormationCommand",
    "BuyPlayerCommand",
    "SellPlayerCommand",
    "AdvanceMatchdayCommand",
]
