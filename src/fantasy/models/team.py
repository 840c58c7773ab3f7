"""Pydantic v2 validation models for team and user records."""

from pydantic import BaseModel, Field


class TeamModel(BaseModel):
    """Validation model for a real-world team."""

    team_id: int = Field(gt=0)
    name: str = Field(min_length=1)
    logo: str = ""


class UserModel(BaseModel):
    """Display data for a user; identity itself is resolved upstream."""

    user_id: str = Field(min_length=1)
    name: str | None = None
    image: str | None = None
