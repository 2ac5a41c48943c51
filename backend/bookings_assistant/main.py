from fastapi import FastAPI
from dotenv import load_dotenv
load_dotenv(dotenv_path="backend/.env", override=False)
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging, os, time, uuid

from .routers import bookings, comments, emails, links
from .db.database import get_db, init_db, SessionLocal
from .models.booking_model import OsmBooking
from .models.email_model import EmailMessage
from .core.logging import init_logging
from .services.hashing import configure_hashing, load_hashing_config
from .services.backfill import backfill_name_hashes
from .services.background import get_last_sync_summary, start_background_tasks, stop_background_tasks
from .services.osm_client import close_osm_client


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    init_logging()
    init_db()
    hashing = configure_hashing(load_hashing_config())
    db = SessionLocal()
    try:
        backfill_name_hashes(db, hashing)
    finally:
        db.close()
    run_background = os.getenv('BACKGROUND_TASKS', '1') != '0'
    if run_background:
        start_background_tasks()
    yield
    # Shutdown
    if run_background:
        await stop_background_tasks()
    await close_osm_client()

app = FastAPI(title="Campsite Bookings Assistant", lifespan=lifespan)

_origins = [o.strip() for o in os.getenv('CORS_ORIGINS', '*').split(',') if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(bookings.router, prefix="/api/bookings", tags=["bookings"])
app.include_router(emails.router, prefix="/api/emails", tags=["emails"])
app.include_router(comments.router, prefix="/api/comments", tags=["comments"])
app.include_router(links.router, prefix="/api/links", tags=["links"])


@app.get("/health")
def health(db: Session = Depends(get_db)):
    total_bookings = db.query(func.count(OsmBooking.id)).scalar() or 0
    total_emails = db.query(func.count(EmailMessage.id)).scalar() or 0
    return {"status": "ok", "bookings": total_bookings, "emails": total_emails, "last_sync": get_last_sync_summary()}

@app.middleware("http")
async def timing_logger(request: Request, call_next):
    trace_id = request.headers.get("X-Trace-Id", str(uuid.uuid4())[:8])
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as exc:  # pragma: no cover
        duration = (time.perf_counter()-start)*1000
        logging.getLogger().error(
            f"ERR {request.method} {request.url.path} {type(exc).__name__}",
            exc_info=exc,
            extra={"trace_id": trace_id, "method": request.method, "path": request.url.path, "status": 500, "duration_ms": round(duration,1)}
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error", "trace_id": trace_id})
    duration = (time.perf_counter()-start)*1000
    logging.getLogger().info(
        f"{request.method} {request.url.path} {response.status_code} {duration:.1f}ms",
        extra={"trace_id": trace_id, "method": request.method, "path": request.url.path, "status": response.status_code, "duration_ms": round(duration,1)}
    )
    response.headers['X-Trace-Id'] = trace_id
    return response
