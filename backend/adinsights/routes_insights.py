"""
Insight routes: list, generate, fetch and triage insights for a client.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from adinsights.aggregator import build_insight_data
from adinsights.database import get_db
from adinsights.helpers import parse_status_filter, summarize_insights
from adinsights.insight_engine import InsightEngine
from adinsights.insight_models import (
    INSIGHT_STATUSES,
    AccountMetrics,
    CampaignData,
    InsightData,
    can_transition,
)
from adinsights.rule_config import RuleThresholds, load_thresholds
from adinsights.store import SqlAlchemyInsightStore

logger = logging.getLogger(__name__)

router = APIRouter()

_THRESHOLDS: Optional[RuleThresholds] = None


def get_thresholds() -> RuleThresholds:
    global _THRESHOLDS
    if _THRESHOLDS is None:
        _THRESHOLDS = load_thresholds()
    return _THRESHOLDS


def get_insight_engine(db: Session = Depends(get_db)) -> InsightEngine:
    return InsightEngine(SqlAlchemyInsightStore(db), thresholds=get_thresholds())


# ── Pydantic models ────────────────────────────────────────────────────

class AccountMetricsIn(BaseModel):
    conversions: float = 0.0
    previous_conversions: float = 0.0
    cost: float = 0.0
    previous_cost: float = 0.0
    cpa: float = 0.0
    previous_cpa: float = 0.0
    roas: float = 0.0
    previous_roas: float = 0.0
    impression_share_lost_budget: float = 0.0
    impression_share_lost_rank: float = 0.0


class CampaignIn(BaseModel):
    id: str
    name: str
    type: str = "UNKNOWN"
    status: str = "ENABLED"
    conversions: float = 0.0
    previous_conversions: float = 0.0
    cost: float = 0.0
    previous_cost: float = 0.0
    impression_share_lost_budget: float = 0.0
    budget_limited: bool = False
    budget: float = 0.0
    recommended_budget: Optional[float] = None


class GenerateInsightsRequest(BaseModel):
    account: AccountMetricsIn
    campaigns: List[CampaignIn] = []
    client_name: str = ""
    currency: str = "EUR"

    def to_insight_data(self, client_id: str) -> InsightData:
        a = self.account
        return InsightData(
            account=AccountMetrics(
                conversions=a.conversions,
                previous_conversions=a.previous_conversions,
                cost=a.cost,
                previous_cost=a.previous_cost,
                cpa=a.cpa,
                previous_cpa=a.previous_cpa,
                roas=a.roas,
                previous_roas=a.previous_roas,
                impression_share_lost_budget=a.impression_share_lost_budget,
                impression_share_lost_rank=a.impression_share_lost_rank,
            ),
            campaigns=[
                CampaignData(
                    id=c.id,
                    name=c.name,
                    type=c.type,
                    status=c.status,
                    conversions=c.conversions,
                    previous_conversions=c.previous_conversions,
                    cost=c.cost,
                    previous_cost=c.previous_cost,
                    impression_share_lost_budget=c.impression_share_lost_budget,
                    budget_limited=c.budget_limited,
                    budget=c.budget,
                    recommended_budget=c.recommended_budget,
                )
                for c in self.campaigns
            ],
            client_id=client_id,
            client_name=self.client_name,
            currency=self.currency,
        )


class ReportRowsRequest(BaseModel):
    """Raw Google Ads report rows for the last 7 days and the last 14 days."""
    account_current_rows: List[Dict[str, Any]]
    account_full_rows: List[Dict[str, Any]]
    campaign_current_rows: List[Dict[str, Any]] = []
    campaign_full_rows: List[Dict[str, Any]] = []
    client_name: str = ""
    currency: str = "EUR"


class InsightStatusUpdate(BaseModel):
    status: str
    user_id: Optional[str] = None


# ── Insights ────────────────────────────────────────────────────────────

def _run_engine(engine: InsightEngine, client_id: str, build_data: Callable[[], InsightData]) -> dict:
    try:
        summary = engine.run(build_data())
    except Exception as e:
        logger.error(f"Error generating insights for client '{client_id}': {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {
        "success": True,
        "generated": summary.generated,
        "created": summary.created,
        "skipped": summary.skipped,
        "resolved": summary.resolved,
    }


@router.get("/clients/{client_id}/insights")
def list_insights(
    client_id: str,
    status: str = Query("new,picked_up"),
    type: Optional[str] = Query(None),
    impact: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    engine: InsightEngine = Depends(get_insight_engine),
):
    insights = engine.get_insights(
        client_id, statuses=parse_status_filter(status), type=type, impact=impact, limit=limit
    )
    return {
        "success": True,
        "insights": [i.to_dict() for i in insights],
        "summary": summarize_insights(insights),
    }


@router.post("/clients/{client_id}/insights/generate")
def generate_insights(
    client_id: str,
    request: GenerateInsightsRequest,
    engine: InsightEngine = Depends(get_insight_engine),
):
    return _run_engine(engine, client_id, lambda: request.to_insight_data(client_id))


@router.post("/clients/{client_id}/insights/generate-from-report")
def generate_insights_from_report(
    client_id: str,
    request: ReportRowsRequest,
    engine: InsightEngine = Depends(get_insight_engine),
):
    return _run_engine(
        engine,
        client_id,
        lambda: build_insight_data(
            client_id,
            request.client_name,
            request.currency,
            account_current_rows=request.account_current_rows,
            account_full_rows=request.account_full_rows,
            campaign_current_rows=request.campaign_current_rows,
            campaign_full_rows=request.campaign_full_rows,
        ),
    )


@router.get("/insights/{insight_id}")
def get_insight(insight_id: str, engine: InsightEngine = Depends(get_insight_engine)):
    insight = engine.get_insight(insight_id)
    if insight is None:
        raise HTTPException(status_code=404, detail="Insight not found")
    return {"success": True, "insight": insight.to_dict()}


@router.patch("/insights/{insight_id}")
def update_insight(
    insight_id: str,
    request: InsightStatusUpdate,
    engine: InsightEngine = Depends(get_insight_engine),
):
    if request.status not in INSIGHT_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    insight = engine.get_insight(insight_id)
    if insight is None:
        raise HTTPException(status_code=404, detail="Insight not found")
    if not can_transition(insight.status, request.status):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot move insight from '{insight.status}' to '{request.status}'",
        )

    if not engine.update_insight_status(insight_id, request.status, request.user_id):
        raise HTTPException(status_code=500, detail="Failed to update insight")

    updated = engine.get_insight(insight_id)
    if updated is None:
        raise HTTPException(status_code=404, detail="Insight not found")
    return {"success": True, "insight": updated.to_dict()}
