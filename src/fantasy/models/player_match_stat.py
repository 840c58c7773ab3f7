"""Pydantic v2 validation model for per-player per-match statistics."""

import warnings

from pydantic import BaseModel, Field, model_validator
from typing_extensions import Self


class PlayerMatchStatModel(BaseModel):
    """One player's performance in one match.

    ``rating`` is the raw fantasy score; the engine never derives it from
    the other fields.
    """

    player_id: int = Field(gt=0)
    match_id: int = Field(gt=0)
    rating: float = Field(ge=0.0, le=10.0)
    minutes_played: int = Field(default=0, ge=0, le=130)
    goals: int = Field(default=0, ge=0)
    assists: int = Field(default=0, ge=0)
    yellow_cards: int = Field(default=0, ge=0, le=2)
    red_cards: int = Field(default=0, ge=0, le=1)

    @model_validator(mode="after")
    def warn_unusual_values(self) -> Self:
        """Warn on unusual but valid values."""
        if self.minutes_played == 0 and (self.goals or self.assists):
            warnings.warn(
                f"Player {self.player_id} has goal contributions with 0 "
                f"minutes in match {self.match_id}",
                stacklevel=2,
            )
        return self
