"""Summary and health endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from compliance_api.analytics.reports import DEFAULT_WINDOW_DAYS, ReportService
from compliance_api.db.session import get_db

router = APIRouter(prefix="/v1", tags=["analytics"])


@router.get("/summary")
def get_summary(
    project_id: str = Query("all", description="Project id, or 'all'"),
    regulation: Optional[str] = Query(None, description="Regulation tag, or 'all'"),
    window_days: int = Query(DEFAULT_WINDOW_DAYS, ge=1, le=365),
    db: Session = Depends(get_db),
):
    """Aggregated counts, score, pending actions and timeline."""
    return ReportService(db).summary(project_id, regulation, window_days)


@router.get("/health-score")
def get_health_score(
    project_id: str = Query("all", description="Project id, or 'all'"),
    window_days: int = Query(DEFAULT_WINDOW_DAYS, ge=1, le=365),
    db: Session = Depends(get_db),
):
    """Current score, trend and per-regulation breakdown."""
    return ReportService(db).health(project_id, window_days)
