"""Risk prediction endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from compliance_api.db.session import get_db
from compliance_api.risk.engine import RiskPredictionService

router = APIRouter(prefix="/v1", tags=["predictions"])


@router.get("/predictions")
def get_predictions(
    project_id: str = Query(..., min_length=1),
    days_ahead: Optional[int] = Query(None, ge=1, le=90),
    dependency_chain_length: Optional[int] = Query(None, ge=0),
    team_workload: Optional[float] = Query(None, ge=0.0, le=1.0),
    db: Session = Depends(get_db),
):
    """Ranked, explainable risk predictions for a project."""
    return RiskPredictionService(db).predict(
        project_id,
        days_ahead=days_ahead,
        dependency_chain_length=dependency_chain_length,
        team_workload=team_workload,
    )
