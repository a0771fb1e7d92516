"""
Scoring service — tiered points schedule and named scoring profiles.

A ``ScoringConfig`` maps a report's zero-based rank among all reports on the
same rumor URL to a point value: ``tiers[rank]`` while the rank is inside the
tier list, ``default_points`` beyond it.  Configs are validated when saved,
never at lookup time, so ``points_for_rank`` is total.

Profiles are stored by name in ``scoring_profiles``; the reserved name
``current`` is the one consulted at approval time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.config import get_settings
from rumorwatch.models.scoring_profile import ScoringProfile, CURRENT_PROFILE

logger = logging.getLogger(__name__)


class ScoringConfigError(ValueError):
    """Raised when a scoring config fails validation."""


class ScoringProfileNotFoundError(LookupError):
    pass


class ReservedProfileNameError(ValueError):
    pass


@dataclass(frozen=True)
class ScoringConfig:
    tiers: tuple[int, ...]
    default_points: int

    def to_dict(self) -> dict[str, Any]:
        return {"tiers": list(self.tiers), "default_points": self.default_points}


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------

def points_for_rank(rank: int, config: ScoringConfig) -> int:
    """Return the award for a zero-based *rank* under *config*."""
    if 0 <= rank < len(config.tiers):
        return config.tiers[rank]
    return config.default_points


def _is_points_value(value: Any) -> bool:
    # bool is an int subclass; True/False are not point values
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def validate_config(tiers: Sequence[Any], default_points: Any) -> ScoringConfig:
    """Build a ``ScoringConfig`` or raise ``ScoringConfigError``.

    Tiers must be a non-empty sequence of non-negative integers; integral
    floats (``30.0``) are accepted and normalized.
    """
    if isinstance(tiers, (str, bytes)) or not isinstance(tiers, Sequence):
        raise ScoringConfigError("tiers must be a list of non-negative integers")
    if len(tiers) == 0:
        raise ScoringConfigError("tiers must contain at least one value")

    normalized = []
    for i, value in enumerate(tiers):
        value = _normalize_number(value)
        if not _is_points_value(value):
            raise ScoringConfigError(f"tier {i} must be a non-negative integer, got {tiers[i]!r}")
        normalized.append(value)

    default = _normalize_number(default_points)
    if not _is_points_value(default):
        raise ScoringConfigError(f"default_points must be a non-negative integer, got {default_points!r}")

    return ScoringConfig(tiers=tuple(normalized), default_points=default)


def _normalize_number(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def parse_tiers(raw: str) -> list[int]:
    """Parse the comma-separated admin input form, e.g. ``"50, 40, 30"``."""
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    try:
        return [int(p) for p in parts]
    except ValueError as exc:
        raise ScoringConfigError(f"tiers must be comma-separated integers: {raw!r}") from exc


def default_config() -> ScoringConfig:
    settings = get_settings()
    return validate_config(settings.DEFAULT_SCORING_TIERS, settings.DEFAULT_SCORING_POINTS)


def _profile_to_config(profile: ScoringProfile) -> ScoringConfig:
    return ScoringConfig(tiers=tuple(profile.tiers), default_points=profile.default_points)


def _profile_to_dict(profile: ScoringProfile) -> dict[str, Any]:
    return {
        "name": profile.name,
        "tiers": list(profile.tiers),
        "default_points": profile.default_points,
        "version": profile.version,
        "source_profile": profile.source_profile,
        "updated_by": profile.updated_by,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
        "updated_at": profile.updated_at.isoformat() if profile.updated_at else None,
    }


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

async def _get_profile(db: AsyncSession, name: str, *, for_update: bool = False) -> ScoringProfile | None:
    query = select(ScoringProfile).where(ScoringProfile.name == name)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def load_current_config(db: AsyncSession) -> ScoringConfig:
    """Return the persisted ``current`` config, or the configured default."""
    profile = await _get_profile(db, CURRENT_PROFILE)
    if profile is None:
        return default_config()
    return _profile_to_config(profile)


async def _upsert_profile(
    db: AsyncSession,
    name: str,
    config: ScoringConfig,
    *,
    updated_by: str | None,
    source_profile: str | None = None,
) -> ScoringProfile:
    profile = await _get_profile(db, name, for_update=True)
    if profile is None:
        profile = ScoringProfile(
            name=name,
            tiers=list(config.tiers),
            default_points=config.default_points,
            version=1,
            source_profile=source_profile,
            updated_by=updated_by,
        )
        db.add(profile)
    else:
        profile.tiers = list(config.tiers)
        profile.default_points = config.default_points
        profile.version = (profile.version or 0) + 1
        profile.source_profile = source_profile
        profile.updated_by = updated_by
        profile.updated_at = datetime.utcnow()
    await db.flush()
    return profile


async def save_current_config(
    db: AsyncSession,
    tiers: Sequence[Any],
    default_points: Any,
    *,
    updated_by: str | None = None,
) -> dict[str, Any]:
    """Validate and store a new ``current`` config."""
    config = validate_config(tiers, default_points)
    profile = await _upsert_profile(db, CURRENT_PROFILE, config, updated_by=updated_by)
    logger.info(
        "Scoring config saved by %s: tiers=%s default=%d (v%d)",
        updated_by, list(config.tiers), config.default_points, profile.version,
    )
    return _profile_to_dict(profile)


async def save_profile(
    db: AsyncSession,
    name: str,
    tiers: Sequence[Any],
    default_points: Any,
    *,
    updated_by: str | None = None,
) -> dict[str, Any]:
    """Store a named profile without promoting it."""
    name = (name or "").strip()
    if not name:
        raise ScoringConfigError("profile name is required")
    if name == CURRENT_PROFILE:
        raise ReservedProfileNameError(f"'{CURRENT_PROFILE}' is reserved; save the current config instead")

    config = validate_config(tiers, default_points)
    profile = await _upsert_profile(db, name, config, updated_by=updated_by)
    logger.info("Scoring profile %r saved by %s", name, updated_by)
    return _profile_to_dict(profile)


async def promote_profile(
    db: AsyncSession,
    name: str,
    *,
    updated_by: str | None = None,
) -> dict[str, Any]:
    """Copy a named profile's tiers/default into the ``current`` slot."""
    if name == CURRENT_PROFILE:
        raise ReservedProfileNameError("the current profile cannot be promoted onto itself")

    source = await _get_profile(db, name)
    if source is None:
        raise ScoringProfileNotFoundError(f"Scoring profile {name!r} not found")

    config = validate_config(source.tiers, source.default_points)
    profile = await _upsert_profile(
        db, CURRENT_PROFILE, config, updated_by=updated_by, source_profile=name,
    )
    logger.info("Scoring profile %r promoted to current by %s (v%d)", name, updated_by, profile.version)
    return _profile_to_dict(profile)


async def get_current_profile(db: AsyncSession) -> dict[str, Any]:
    """Current config for display, flagged when it is the built-in default."""
    profile = await _get_profile(db, CURRENT_PROFILE)
    if profile is None:
        return {"name": CURRENT_PROFILE, **default_config().to_dict(), "is_default": True}
    return {**_profile_to_dict(profile), "is_default": False}


async def list_profiles(db: AsyncSession) -> list[dict[str, Any]]:
    """Named profiles, excluding ``current``."""
    result = await db.execute(
        select(ScoringProfile)
        .where(ScoringProfile.name != CURRENT_PROFILE)
        .order_by(ScoringProfile.name)
    )
    return [_profile_to_dict(p) for p in result.scalars().all()]
