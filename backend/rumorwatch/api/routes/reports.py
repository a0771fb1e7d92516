"""
Report submission API routes.

Endpoints:
    POST /reports          — Submit a report (multipart: rumor_url, description, image?)
    GET  /reports/mine     — Caller's own reports, newest first
    GET  /reports/{id}     — Report detail (owner or report-viewing admin)
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.db.postgres import get_db
from rumorwatch.models.admin import Permission
from rumorwatch.api.middleware.auth import Identity, get_current_identity
from rumorwatch.services import admin_service, report_service, storage_service
from rumorwatch.services.report_service import ReportValidationError

router = APIRouter()


@router.post("/reports", status_code=status.HTTP_201_CREATED)
async def submit_report(
    rumor_url: str = Form(""),
    description: str = Form(""),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    """Submit a new rumor report. The optional image is stored before the report row."""
    try:
        rumor_url, description = report_service.validate_submission(rumor_url, description)
    except ReportValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    image_url = None
    if image is not None and image.filename:
        data = await image.read()
        try:
            report_service.validate_image(image.content_type, len(data))
        except ReportValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        image_url = storage_service.upload_bytes(data, image.filename)

    try:
        report = await report_service.submit_report(
            db,
            submitted_by=identity.user_id,
            rumor_url=rumor_url,
            description=description,
            submitted_by_email=identity.email,
            submitted_by_name=identity.name,
            image_url=image_url,
        )
        await db.commit()
    except Exception:
        if image_url:
            storage_service.delete_by_url(image_url)
        raise
    return report


@router.get("/reports/mine")
async def list_my_reports(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    reports = await report_service.list_user_reports(db, identity.user_id, limit=limit, offset=offset)
    return {"reports": reports, "count": len(reports)}


@router.get("/reports/{report_id}")
async def get_report(
    report_id: UUID,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
):
    report = await report_service.get_report(db, report_id)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")

    if report["submitted_by"] != identity.user_id:
        admin = await admin_service.get_admin(db, identity.user_id)
        if admin is None or not admin.can(Permission.VIEW_REPORTS):
            # Hide other users' reports entirely
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return report
