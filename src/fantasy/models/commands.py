"""Typed command models validated at the boundary before reaching the engines.

Each command names one engine operation.  ``mutates_squad`` tells the
dispatcher whether the matchday lock guard applies.
"""

from typing import ClassVar, Literal

from pydantic import BaseModel, Field, field_validator

from fantasy.formations import FORMATION_CODES


def _check_formation(value: str) -> str:
    if value not in FORMATION_CODES:
        raise ValueError(
            f"formation must be one of {', '.join(FORMATION_CODES)}"
        )
    return value


class _Command(BaseModel):
    mutates_squad: ClassVar[bool] = True

    user_id: str = Field(min_length=1)


class CreateSquadCommand(_Command):
    formation: str

    @field_validator("formation")
    @classmethod
    def check_formation(cls, value: str) -> str:
        return _check_formation(value)


class AddPlayerCommand(_Command):
    player_id: int = Field(gt=0)
    as_starter: bool = True


class RemovePlayerCommand(_Command):
    player_id: int = Field(gt=0)


class ToggleStarterCommand(_Command):
    player_id: int = Field(gt=0)


class SwapPlayersCommand(_Command):
    player_id_a: int = Field(gt=0)
    player_id_b: int = Field(gt=0)


class SetCaptainCommand(_Command):
    player_id: int = Field(gt=0)
    role: Literal["captain", "captainSub"]


class UpdateFormationCommand(_Command):
    formation: str

    @field_validator("formation")
    @classmethod
    def check_formation(cls, value: str) -> str:
        return _check_formation(value)


class BuyPlayerCommand(_Command):
    player_id: int = Field(gt=0)


class SellPlayerCommand(_Command):
    player_id: int = Field(gt=0)


class AdvanceMatchdayCommand(BaseModel):
    """Operator command; not subject to the squad lock."""

    mutates_squad: ClassVar[bool] = False

    matchday_id: int = Field(gt=0)
    target_status: Literal["OPEN", "LOCK", "LIVE", "RESULTS"]
