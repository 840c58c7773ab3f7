"""Validation wrapper layer between reference-data feeds and persistence.

Validates dicts against Pydantic models, logs and skips failures, and
loads validated reference data in one transaction.

Usage::

    from fantasy.validation import validate_batch
    from fantasy.models import PlayerModel

    valid, rejected = validate_batch(rows, PlayerModel, {"source": "feed"})
    repo.upsert_players(valid)
"""

import logging
import warnings

from pydantic import BaseModel, ValidationError

from fantasy.db import transaction
from fantasy.models import (
    MatchdayModel,
    MatchModel,
    PlayerMatchStatModel,
    PlayerModel,
    TeamModel,
    UserModel,
)

logger = logging.getLogger(__name__)


def validate_record(
    data: dict,
    model_cls: type[BaseModel],
    context: dict | None = None,
) -> dict | None:
    """Validate a dict against a Pydantic model.

    Args:
        data: Dict of field values to validate.
        model_cls: Pydantic model class (e.g. PlayerModel).
        context: Free-form dict included in log messages (feed name,
            matchday id, ...).

    Returns:
        The validated dict (via ``model.model_dump()``) on success,
        or ``None`` if validation failed (the failure is logged).
    """
    context = context or {}
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            model = model_cls.model_validate(data)

        # Soft-validation warnings become log warnings
        for w in caught:
            logger.warning(
                "Validation warning for %s (%s): %s",
                model_cls.__name__,
                context,
                w.message,
            )

        return model.model_dump()

    except ValidationError as e:
        logger.error(
            "Validation failed for %s (%s): %s",
            model_cls.__name__,
            context,
            e,
        )
        return None


def validate_batch(
    items: list[dict],
    model_cls: type[BaseModel],
    context: dict | None = None,
) -> tuple[list[dict], int]:
    """Validate a list of dicts, returning valid results and rejected count.

    Returns:
        Tuple of (list of validated dicts, number of rejected items).
    """
    valid: list[dict] = []
    rejected = 0

    for item in items:
        result = validate_record(item, model_cls, context)
        if result is not None:
            valid.append(result)
        else:
            rejected += 1

    return valid, rejected


def load_reference_data(
    repo,                # ReferenceRepository
    *,
    teams: list[dict] = (),
    players: list[dict] = (),
    users: list[dict] = (),
    matchdays: list[dict] = (),
    matches: list[dict] = (),
    stats: list[dict] = (),
) -> dict:
    """Validate and persist a reference-data snapshot atomically.

    Invalid rows are skipped and counted; valid rows are written in
    dependency order (teams before players, matchdays before matches)
    inside one transaction, so a storage error leaves nothing behind.

    Returns:
        Dict mapping each entity name to ``{"loaded": n, "rejected": m}``.
    """
    plan = [
        ("teams", teams, TeamModel),
        ("players", players, PlayerModel),
        ("users", users, UserModel),
        ("matchdays", matchdays, MatchdayModel),
        ("matches", matches, MatchModel),
        ("stats", stats, PlayerMatchStatModel),
    ]

    summary: dict[str, dict[str, int]] = {}
    with transaction(repo.conn):
        validated: dict[str, list[dict]] = {}
        for name, rows, model_cls in plan:
            valid, rejected = validate_batch(list(rows), model_cls, {"entity": name})
            validated[name] = valid
            summary[name] = {"loaded": len(valid), "rejected": rejected}

        repo.upsert_teams(validated["teams"])
        repo.upsert_players(validated["players"])
        repo.upsert_users(validated["users"])
        for matchday in validated["matchdays"]:
            day_matches = [
                m for m in validated["matches"]
                if m["matchday_id"] == matchday["matchday_id"]
            ]
            repo.upsert_matchday_matches(matchday, day_matches)
        loaded_days = {md["matchday_id"] for md in validated["matchdays"]}
        orphans = [
            m for m in validated["matches"] if m["matchday_id"] not in loaded_days
        ]
        for match in orphans:
            repo.upsert_match(match)
        repo.upsert_player_match_stats(validated["stats"])

    logger.info(
        "Loaded reference data: %s",
        ", ".join(f"{k}={v['loaded']}" for k, v in summary.items()),
    )
    return summary
