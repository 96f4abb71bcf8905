import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.core.config import settings
from app.core.database import Base, engine
from app.scheduler import start_scheduler, shutdown_scheduler
from app.api import (
    analytics,
    auth,
    bookings,
    campaigns,
    chatbot,
    clinics,
    demo_access,
    genius,
    leads,
    outreach,
    sequences,
    templates,
    users,
)

from app.models import *

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title=f"{settings.SITE_NAME} Backend")

# -------------------------
# CORS (Allow Frontend Cookies)
# -------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True, # <--- MUST BE TRUE for Cookies
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------------
# Include Routers
# -------------------------
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(clinics.router)
app.include_router(leads.router)
app.include_router(sequences.router)
app.include_router(campaigns.router)
app.include_router(outreach.router)
app.include_router(bookings.router)
app.include_router(demo_access.router)
app.include_router(genius.router)
app.include_router(chatbot.router)
app.include_router(analytics.router)
app.include_router(templates.router)

# Uploaded clinic logos
os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


# -------------------------
# DB INIT
# -------------------------
Base.metadata.create_all(bind=engine)

# -------------------------
# FastAPI lifecycle
# -------------------------

@app.on_event("startup")
def startup():
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    else:
        logger.info("⏹️ Scheduler disabled (SCHEDULER_ENABLED=false)")

@app.on_event("shutdown")
def shutdown():
    shutdown_scheduler()

# -------------------------
# Routes
# -------------------------

@app.get("/")
def root():
    return {"status": "running"}
