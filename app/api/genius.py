import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app.api.auth import get_current_user, require_admin, require_importer
from app.core.database import get_db
from app.models.user import User
from app.schemas.genius import (
    CycleResponse,
    EmailSendListResponse,
    GeniusActionResponse,
    GeniusBulkImport,
    GeniusBulkImportResponse,
    GeniusConfigResponse,
    GeniusImportResponse,
    GeniusLeadImport,
    GeniusLeadListResponse,
    GeniusPauseRequest,
    GeniusStartRequest,
    GeniusStatusResponse,
)
from app.services.genius_engine import GeniusEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/genius", tags=["GENIUS Engine"])


def _pagination(page: int, limit: int, total: int):
    return {"page": page, "limit": limit, "total": total, "total_pages": math.ceil(total / limit) if total else 0}


# =========================================================
# 1. LEAD IMPORT
# =========================================================

@router.post("/import-lead", response_model=GeniusImportResponse, status_code=201)
def import_lead(
    payload: GeniusLeadImport,
    response: Response,
    _: Optional[User] = Depends(require_importer),
    db: Session = Depends(get_db),
):
    result = GeniusEngine(db).import_lead(payload.model_dump())
    if not result.success:
        raise HTTPException(status_code=400, detail=result.error)

    if result.existing:
        response.status_code = 200
        return {"success": True, "lead_id": result.lead_id, "existing": True, "message": "Lead already exists"}
    return {"success": True, "lead_id": result.lead_id, "existing": False, "message": "Lead imported"}


@router.post("/import-leads", response_model=GeniusBulkImportResponse)
def import_leads(
    payload: GeniusBulkImport,
    _: Optional[User] = Depends(require_importer),
    db: Session = Depends(get_db),
):
    result = GeniusEngine(db).bulk_import([lead.model_dump() for lead in payload.leads])
    return {
        "success": True,
        "total": result.total,
        "imported": result.imported,
        "duplicates": result.duplicates,
        "failed": result.failed,
        "errors": result.errors,
    }


# =========================================================
# 2. MONITORING
# =========================================================

@router.get("/status", response_model=GeniusStatusResponse)
def get_status(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return GeniusEngine(db).get_status()


@router.get("/stats")
def get_stats(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return GeniusEngine(db).get_stats()


@router.get("/report")
def get_daily_report(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return GeniusEngine(db).generate_daily_report()


@router.get("/leads", response_model=GeniusLeadListResponse)
def list_genius_leads(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows, total = GeniusEngine(db).list_leads(page, limit)
    return {"leads": rows, "pagination": _pagination(page, limit, total)}


@router.get("/email-sends", response_model=EmailSendListResponse)
def list_email_sends(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows, total = GeniusEngine(db).list_email_sends(page, limit)
    return {"sends": rows, "pagination": _pagination(page, limit, total)}


@router.get("/config", response_model=GeniusConfigResponse)
def get_config(_: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return GeniusEngine(db).get_config()


# =========================================================
# 3. CONTROL (admin)
# =========================================================

@router.post("/start", response_model=GeniusActionResponse)
def start_engine(
    payload: Optional[GeniusStartRequest] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    from app.scheduler import reschedule_genius

    engine = GeniusEngine(db)
    interval = payload.interval_minutes if payload else None
    result = engine.start(interval)
    if not result["success"]:
        return result

    reschedule_genius(engine.get_state().cycle_minutes)

    # First cycle runs immediately, later ones on the scheduler
    cycle = engine.run_cycle_locked()
    logger.info(f"🧠 GENIUS initial cycle: {cycle.message}")
    return result


@router.post("/stop", response_model=GeniusActionResponse)
def stop_engine(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return GeniusEngine(db).stop()


@router.post("/pause", response_model=GeniusActionResponse)
def pause_engine(
    payload: Optional[GeniusPauseRequest] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    reason = (payload.reason if payload else None) or "Manual pause"
    return GeniusEngine(db).pause(reason)


@router.post("/resume", response_model=GeniusActionResponse)
def resume_engine(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return GeniusEngine(db).resume()


@router.post("/run-now", response_model=CycleResponse)
def run_now(_: User = Depends(require_admin), db: Session = Depends(get_db)):
    return GeniusEngine(db).run_cycle_locked().to_dict()
