"""
User profile, statistics and leaderboard API routes.

Endpoints:
    GET   /users/me          — Profile and point totals (creates the record on first visit)
    PATCH /users/me          — Update display name
    GET   /users/me/stats    — Report counts by status, points, leaderboard position
    GET   /users/me/ledger   — Points ledger entries for the caller
    GET   /leaderboard       — Top users by points
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.db.postgres import get_db
from rumorwatch.api.middleware.auth import Identity, get_current_identity
from rumorwatch.services import analytics_service, ledger_service, report_service

router = APIRouter()


class UserResponse(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    total_points: int = 0
    total_reports: int = 0
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UserUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


@router.get("/users/me", response_model=UserResponse)
async def get_me(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    user = await report_service.touch_user(db, identity.user_id, email=identity.email, name=identity.name)
    return UserResponse.model_validate(user)


@router.patch("/users/me", response_model=UserResponse)
async def update_me(
    payload: UserUpdateRequest,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name must not be blank")

    user = await report_service.touch_user(db, identity.user_id, email=identity.email)
    user.name = name
    await db.flush()
    return UserResponse.model_validate(user)


@router.get("/users/me/stats")
async def get_my_stats(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    stats = await analytics_service.get_user_stats(db, identity.user_id)
    if stats is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return stats


@router.get("/users/me/ledger")
async def get_my_ledger(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    entries = await ledger_service.list_user_entries(db, identity.user_id, limit=limit, offset=offset)
    return {"entries": entries, "count": len(entries)}


@router.get("/leaderboard")
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    return {"leaderboard": await analytics_service.get_leaderboard(db, limit=limit)}
