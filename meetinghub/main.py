import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from meetinghub.admin.router import router as admin_router
from meetinghub.auth.router import router as auth_router
from meetinghub.core.config import LOG_LEVEL
from meetinghub.core.db import SessionLocal, init_db
from meetinghub.core.errors import MeetingHubError, meetinghub_error_handler
from meetinghub.meetings.files_router import router as files_router
from meetinghub.meetings.router import router as meetings_router
from meetinghub.scheduler.cleanup import start_cleanup_job
from meetinghub.scheduler.reminder import reminders, restore_pending_reminders, shutdown_scheduler, start_scheduler
from meetinghub.services.identity_service import ensure_default_admin, ensure_roles_exist
from meetinghub.users.router import router as users_router

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="MeetingHub")

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(MeetingHubError, meetinghub_error_handler)


# --- Database & jobs ---
@app.on_event("startup")
def on_startup():
    init_db()
    db = SessionLocal()
    try:
        ensure_roles_exist(db)
        ensure_default_admin(db)
        restore_pending_reminders(db, reminders)
    finally:
        db.close()

    # Start meeting reminder scheduler
    start_scheduler()
    start_cleanup_job()
    logger.info("MeetingHub started")


@app.on_event("shutdown")
def on_shutdown():
    shutdown_scheduler()


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


# --- Routers ---
app.include_router(auth_router, prefix="/auth", tags=["Auth"])
app.include_router(meetings_router, tags=["Meetings"])
app.include_router(files_router, tags=["Meeting Files"])
app.include_router(users_router, tags=["Users"])
app.include_router(admin_router, tags=["Admin"])
