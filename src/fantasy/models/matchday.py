"""Pydantic v2 validation models for matchday and match records."""

from typing import Literal

from pydantic import BaseModel, Field, model_validator
from typing_extensions import Self


class MatchdayModel(BaseModel):
    """Validation model for a matchday (round of fixtures)."""

    matchday_id: int = Field(gt=0)
    name: str = Field(min_length=1)
    status: Literal["OPEN", "LOCK", "LIVE", "RESULTS"] = "OPEN"
    start_date: str = Field(min_length=1)  # ISO 8601
    end_date: str = Field(min_length=1)

    @model_validator(mode="after")
    def check_date_order(self) -> Self:
        """ISO 8601 strings compare chronologically."""
        if self.end_date < self.start_date:
            raise ValueError(
                f"end_date ({self.end_date}) is before start_date "
                f"({self.start_date})"
            )
        return self


class MatchModel(BaseModel):
    """Validation model for a single fixture within a matchday."""

    match_id: int = Field(gt=0)
    matchday_id: int = Field(gt=0)
    home_team_id: int = Field(gt=0)
    away_team_id: int = Field(gt=0)
    home_score: int = Field(default=0, ge=0)
    away_score: int = Field(default=0, ge=0)
    status: Literal["SCHEDULED", "LIVE", "FINISHED", "POSTPONED"] = "SCHEDULED"
    kickoff: str = Field(min_length=1)  # ISO 8601

    @model_validator(mode="after")
    def check_teams_different(self) -> Self:
        """A team cannot play itself."""
        if self.home_team_id == self.away_team_id:
            raise ValueError(
                f"home_team_id and away_team_id are identical ({self.home_team_id})"
            )
        return self
