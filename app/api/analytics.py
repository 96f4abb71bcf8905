from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.auth import require_admin
from app.core.database import get_db
from app.schemas.analytics import AnalyticsOverview, ChatbotAnalytics
from app.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/api/analytics", tags=["Analytics"], dependencies=[Depends(require_admin)])

# Per-clinic analytics live under /api/clinics/{clinic_id}/analytics


# 1. Platform overview
@router.get("", response_model=AnalyticsOverview)
def get_overview(
    dateRange: str = Query("7d", enum=["24h", "7d", "30d", "90d"]),
    db: Session = Depends(get_db),
):
    return AnalyticsService(db).get_overview(dateRange)


# 2. Chatbot totals
@router.get("/chatbot", response_model=ChatbotAnalytics)
def get_chatbot_analytics(db: Session = Depends(get_db)):
    return AnalyticsService(db).get_chatbot_analytics()
