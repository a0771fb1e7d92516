"""
Notification inbox API routes.

Endpoints:
    GET    /notifications               — Caller's notifications, newest first
    GET    /notifications/unread-count  — Number of unread notifications
    PUT    /notifications/{id}/read     — Mark one notification read
    PUT    /notifications/read-all      — Mark all notifications read
    DELETE /notifications/{id}          — Delete one notification
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.db.postgres import get_db
from rumorwatch.api.middleware.auth import Identity, get_current_identity
from rumorwatch.services import notification_service
from rumorwatch.services.notification_service import NotificationNotFoundError

router = APIRouter()


@router.get("/notifications")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    notifications = await notification_service.list_notifications(
        db, identity.user_id, unread_only=unread_only, limit=limit, offset=offset,
    )
    return {"notifications": notifications, "count": len(notifications)}


@router.get("/notifications/unread-count")
async def unread_count(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    return {"unread": await notification_service.count_unread(db, identity.user_id)}


# Registered before /{id}/read so "read-all" is not parsed as an id
@router.put("/notifications/read-all")
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    updated = await notification_service.mark_all_read(db, identity.user_id)
    return {"updated": updated}


@router.put("/notifications/{notification_id}/read")
async def mark_read(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        return await notification_service.mark_read(db, notification_id, identity.user_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    try:
        await notification_service.delete_notification(db, notification_id, identity.user_id)
    except NotificationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
