"""
Admin API routes.

Endpoints:
    GET    /admin/reports                — List reports (filter by status, paginated)
    GET    /admin/reports/{id}/preview   — Would-be rank and points for an approval
    POST   /admin/reports/{id}/review    — Approve or reject a pending report
    GET    /admin/analytics              — Report, user and points totals
    GET    /admin/users                  — User directory (sort by points, reports, name, date)
    POST   /admin/login                  — Start a dashboard session, stamping last login
    GET    /admin/admins                 — List admin records (super admin)
    PUT    /admin/admins/{id}            — Create or update an admin record (super admin)
    DELETE /admin/admins/{id}            — Deactivate an admin (super admin)
    POST   /admin/reconcile              — Check user totals against the points ledger
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.db.postgres import get_db
from rumorwatch.models.admin import Admin, AdminRole, Permission
from rumorwatch.models.report import ReportStatus
from rumorwatch.api.middleware.auth import ensure_permission, get_current_admin, require_permission
from rumorwatch.api.middleware.audit import log_audit
from rumorwatch.services import (
    admin_service,
    analytics_service,
    ledger_service,
    report_service,
    review_service,
)
from rumorwatch.services.review_service import (
    InvalidDecisionError,
    ReportAlreadyReviewedError,
    ReportNotFoundError,
    ReviewDecision,
)

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class ReviewRequest(BaseModel):
    decision: str  # "approved" or "rejected"
    notes: Optional[str] = None


class AdminUpsertRequest(BaseModel):
    role: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    is_active: Optional[bool] = None


class ReconcileRequest(BaseModel):
    repair: bool = False


# ---------------------------------------------------------------------------
# Report review
# ---------------------------------------------------------------------------

@router.get("/admin/reports")
async def list_reports(
    status_filter: Optional[str] = Query(None, alias="status"),
    rumor_url: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.VIEW_REPORTS)),
):
    if status_filter is not None:
        try:
            status_filter = ReportStatus(status_filter)
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown status {status_filter!r}")

    reports, total = await report_service.list_reports(
        db, status=status_filter, rumor_url=rumor_url, limit=limit, offset=offset,
    )
    return {"reports": reports, "total": total, "limit": limit, "offset": offset}


@router.get("/admin/reports/{report_id}/preview")
async def preview_review(
    report_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.VIEW_REPORTS)),
):
    try:
        preview = await review_service.preview_review(db, report_id)
    except ReportNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return preview.to_dict()


@router.post("/admin/reports/{report_id}/review")
async def review_report(
    report_id: UUID,
    payload: ReviewRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    """Approve or reject a report. The response is sent only after the commit."""
    try:
        decision = ReviewDecision(payload.decision)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="decision must be 'approved' or 'rejected'",
        )
    ensure_permission(
        current_admin,
        Permission.APPROVE_REPORTS if decision == ReviewDecision.APPROVED else Permission.REJECT_REPORTS,
    )

    try:
        result = await review_service.review_report(
            db, report_id, decision,
            reviewer=current_admin.email or current_admin.id,
            notes=payload.notes,
        )
    except ReportNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    except ReportAlreadyReviewedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except InvalidDecisionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))

    details = f"Report {decision.value}"
    if result.points_awarded is not None:
        details += f" (rank {result.rank}, {result.points_awarded} points)"
    await log_audit(
        action="review",
        resource="report",
        resource_id=str(report_id),
        actor_id=current_admin.id,
        details=details,
        request=request,
        db=db,
    )
    await db.commit()

    return {
        "report": result.report,
        "decision": result.decision.value,
        "points_awarded": result.points_awarded,
        "rank": result.rank,
        "submitter_total_points": result.submitter_total_points,
    }


# ---------------------------------------------------------------------------
# Analytics and ledger
# ---------------------------------------------------------------------------

@router.get("/admin/analytics")
async def get_analytics(
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.VIEW_STATISTICS)),
):
    return await analytics_service.get_admin_stats(db)


@router.get("/admin/users")
async def list_users(
    sort_by: str = Query("points"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.VIEW_USERS)),
):
    try:
        users, total = await analytics_service.list_users(db, sort_by=sort_by, limit=limit, offset=offset)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"users": users, "total": total, "limit": limit, "offset": offset}


@router.post("/admin/reconcile")
async def reconcile_points(
    request: Request,
    payload: Optional[ReconcileRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.VIEW_STATISTICS)),
):
    repair = bool(payload and payload.repair)
    if repair:
        ensure_permission(current_admin, Permission.MANAGE_SETTINGS)

    report = await ledger_service.reconcile_user_totals(db, repair=repair)
    if report["repaired"]:
        await log_audit(
            action="repair",
            resource="user_totals",
            actor_id=current_admin.id,
            details=f"Repaired {len(report['drifted'])} user total(s) from the ledger",
            request=request,
            db=db,
        )
    return report


# ---------------------------------------------------------------------------
# Admin management (super admin)
# ---------------------------------------------------------------------------

@router.post("/admin/login")
async def admin_login(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    admin = await admin_service.record_admin_login(db, current_admin)
    await log_audit(
        action="login",
        resource="admin",
        resource_id=admin.id,
        actor_id=admin.id,
        request=request,
        db=db,
    )
    return admin_service.admin_to_dict(admin)


def _require_super_admin(admin: Admin) -> None:
    if AdminRole(admin.role) != AdminRole.SUPER_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin only")


@router.get("/admin/admins")
async def list_admins(
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(require_permission(Permission.VIEW_ADMINS)),
):
    return {"admins": await admin_service.list_admins(db)}


@router.put("/admin/admins/{admin_id}")
async def upsert_admin(
    admin_id: str,
    payload: AdminUpsertRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    _require_super_admin(current_admin)
    if admin_id == current_admin.id and (
        payload.is_active is False
        or (payload.role is not None and payload.role != AdminRole.SUPER_ADMIN.value)
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot demote or deactivate yourself")

    try:
        admin, created = await admin_service.upsert_admin(
            db, admin_id,
            role=payload.role,
            email=payload.email,
            name=payload.name,
            is_active=payload.is_active,
        )
    except admin_service.InvalidAdminRoleError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await log_audit(
        action="create" if created else "update",
        resource="admin",
        resource_id=admin_id,
        actor_id=current_admin.id,
        details=f"Admin {admin_id} role={AdminRole(admin.role).value} active={admin.is_active}",
        request=request,
        db=db,
    )
    return admin_service.admin_to_dict(admin)


@router.delete("/admin/admins/{admin_id}")
async def deactivate_admin(
    admin_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin),
):
    _require_super_admin(current_admin)
    if admin_id == current_admin.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot deactivate yourself")

    try:
        admin = await admin_service.deactivate_admin(db, admin_id)
    except admin_service.AdminNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Admin not found")

    await log_audit(
        action="deactivate",
        resource="admin",
        resource_id=admin_id,
        actor_id=current_admin.id,
        request=request,
        db=db,
    )
    return admin_service.admin_to_dict(admin)
