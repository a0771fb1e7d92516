"""
Scoring configuration API routes.

Endpoints:
    GET  /admin/scoring                          — Current scoring config
    PUT  /admin/scoring                          — Save the current scoring config
    GET  /admin/scoring/profiles                 — Named scoring profiles
    PUT  /admin/scoring/profiles/{name}          — Save a named profile
    POST /admin/scoring/profiles/{name}/promote  — Make a named profile current
"""

from typing import Any, Union

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.db.postgres import get_db
from rumorwatch.models.admin import Admin, Permission
from rumorwatch.api.middleware.auth import require_permission
from rumorwatch.api.middleware.audit import log_audit
from rumorwatch.services import scoring_service
from rumorwatch.services.scoring_service import (
    ReservedProfileNameError,
    ScoringConfigError,
    ScoringProfileNotFoundError,
)

router = APIRouter()


class ScoringConfigRequest(BaseModel):
    # Either a list of points or the comma-separated form, e.g. "50, 40, 30"
    tiers: Union[list[Any], str]
    default_points: Any


def _tiers_from(payload: ScoringConfigRequest) -> list[Any]:
    if isinstance(payload.tiers, str):
        return scoring_service.parse_tiers(payload.tiers)
    return payload.tiers


@router.get("/admin/scoring")
async def get_scoring(
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.VIEW_REPORTS)),
):
    return await scoring_service.get_current_profile(db)


@router.put("/admin/scoring")
async def save_scoring(
    payload: ScoringConfigRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    try:
        profile = await scoring_service.save_current_config(
            db, _tiers_from(payload), payload.default_points, updated_by=current_admin.id,
        )
    except ScoringConfigError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await log_audit(
        action="save",
        resource="scoring_profile",
        resource_id=profile["name"],
        actor_id=current_admin.id,
        details=f"tiers={profile['tiers']} default={profile['default_points']} v{profile['version']}",
        request=request,
        db=db,
    )
    return profile


@router.get("/admin/scoring/profiles")
async def list_scoring_profiles(
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    return {"profiles": await scoring_service.list_profiles(db)}


@router.put("/admin/scoring/profiles/{name}")
async def save_scoring_profile(
    name: str,
    payload: ScoringConfigRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    try:
        profile = await scoring_service.save_profile(
            db, name, _tiers_from(payload), payload.default_points, updated_by=current_admin.id,
        )
    except (ScoringConfigError, ReservedProfileNameError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await log_audit(
        action="save",
        resource="scoring_profile",
        resource_id=profile["name"],
        actor_id=current_admin.id,
        details=f"tiers={profile['tiers']} default={profile['default_points']}",
        request=request,
        db=db,
    )
    return profile


@router.post("/admin/scoring/profiles/{name}/promote")
async def promote_scoring_profile(
    name: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.MANAGE_SETTINGS)),
):
    try:
        profile = await scoring_service.promote_profile(db, name, updated_by=current_admin.id)
    except ScoringProfileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scoring profile not found")
    except (ScoringConfigError, ReservedProfileNameError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await log_audit(
        action="promote",
        resource="scoring_profile",
        resource_id=name,
        actor_id=current_admin.id,
        details=f"Promoted {name!r} to current (v{profile['version']})",
        request=request,
        db=db,
    )
    return profile
