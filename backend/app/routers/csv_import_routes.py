"""CSV bulk upload endpoints for leads, customers and daily revenue."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, UploadFile, File, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Literal
import logging

from app.database import get_db
from app.auth import get_current_user
from app.errors import CRMError
from app.models import User
from app.rbac import Permission, require_permission, require_super_admin
from app.schemas import ImportResult, RevenueImportResult
from app.services import csv_import

logger = logging.getLogger(__name__)
router = APIRouter()


async def read_csv_upload(file: UploadFile):
    """Read and parse an uploaded CSV, rejecting the whole file with 400 when unusable."""
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be a CSV file"
        )

    content = await file.read()

    if len(content) == 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is empty"
        )

    try:
        headers, rows = csv_import.parse_csv_file(content)
    except Exception as e:
        logger.error(f"CSV parse error: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to parse CSV file: {str(e)}"
        )

    if not rows:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="CSV file contains no data rows"
        )

    return headers, rows


@router.post("/leads/bulk-upload", response_model=ImportResult)
async def bulk_upload_leads(
    file: UploadFile = File(...),
    current_user: User = Depends(require_permission(Permission.LEAD_CREATE)),
    db: AsyncSession = Depends(get_db),
):
    """
    Create leads from a CSV file. Each row follows the same rules as the
    create-lead form; rows without an assignee are assigned to the uploader.

    **Required Permission:** lead:create
    """
    headers, rows = await read_csv_upload(file)
    report = await csv_import.import_leads(db, current_user, headers, rows)
    return report.to_dict()


@router.post("/customers/bulk-upload", response_model=ImportResult)
async def bulk_upload_customers(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Create customers from a CSV file; the agent defaults to the uploader."""
    headers, rows = await read_csv_upload(file)
    report = await csv_import.import_customers(db, current_user, headers, rows)
    return report.to_dict()


@router.post("/daily-revenue/bulk-upload", response_model=RevenueImportResult)
async def bulk_upload_revenue(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    current_user: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Record revenue rows (assigned_user, merchant_code, revenue, orders,
    description, date) and notify each earner. Earners and the uploader are
    emailed summaries once the response is sent.

    **Required Permission:** super admin
    """
    headers, rows = await read_csv_upload(file)
    report, summary = await csv_import.import_revenue(db, current_user, headers, rows, background_tasks)
    return {**report.to_dict(), "summary": summary}


@router.get("/import-templates/{entity}")
async def download_template(
    entity: Literal["leads", "customers", "revenue"],
    current_user: User = Depends(get_current_user),
):
    """CSV template with the expected headers and one example row."""
    try:
        content = csv_import.template_csv(entity)
    except CRMError as e:
        raise e.to_http()
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={entity}_template.csv"}
    )
