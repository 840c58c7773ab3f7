"""Pydantic v2 validation model for player reference records."""

import warnings
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from typing_extensions import Self


class PlayerModel(BaseModel):
    """Validation model for a selectable player."""

    player_id: int = Field(gt=0)
    name: str = Field(min_length=1)
    position: Literal["GK", "DEF", "MID", "FWD"]
    team_id: int = Field(gt=0)
    rating: float | None = Field(default=None, ge=0.0, le=10.0)
    fantasy_price: float = Field(gt=0.0)  # millions

    @model_validator(mode="after")
    def warn_unusual_price(self) -> Self:
        """Catalog prices normally sit between $1M and $15M."""
        if self.fantasy_price < 1.0 or self.fantasy_price > 15.0:
            warnings.warn(
                f"Unusual fantasy_price={self.fantasy_price} for player "
                f"{self.player_id}",
                stacklevel=2,
            )
        return self
