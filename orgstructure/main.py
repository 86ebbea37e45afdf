from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import Session
from sqlalchemy import text
from datetime import datetime
import structlog, uvicorn, os

# Import our modules
from app.core.database import get_db, engine, Base
from app.core.errors import OrgStructureError
from app.core.logging import setup_logging, RequestIdMiddleware
from app.metrics import init_metrics_zero
from app.utils.audit_sink import AUDIT_DIR, AUDIT_MIRROR_ENABLED
from app.api import departments, positions, change_requests, change_log
from app import models  # noqa: F401  (register tables on Base)

AUTO_CREATE_DB = os.getenv("AUTO_CREATE_DB", "1") == "1"

setup_logging()
log = structlog.get_logger("orgstructure")

# FastAPI app
app = FastAPI(
    title="Organization Structure API",
    description="Departments, positions, structure change requests and their audit trail",
    version="0.3.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"], allow_credentials=True,
    allow_methods=["*"], allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

app.include_router(departments.router)
app.include_router(positions.router)
app.include_router(change_requests.router)
app.include_router(change_log.router)

@app.on_event("startup")
def on_startup():
    if AUTO_CREATE_DB:
        Base.metadata.create_all(bind=engine)
        log.info("tables_ready", database=engine.name)
    init_metrics_zero()
    log.info("audit_mirror", enabled=AUDIT_MIRROR_ENABLED, directory=str(AUDIT_DIR))

@app.exception_handler(OrgStructureError)
async def org_structure_error_handler(request: Request, exc: OrgStructureError):
    log.info("request_rejected", path=request.url.path, status=exc.http_status,
             error=type(exc).__name__, detail=str(exc))
    return JSONResponse(status_code=exc.http_status, content={"detail": str(exc)})

@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected", "timestamp": datetime.utcnow()}
    except Exception as e:
        log.error("health_check_failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)},
        )

@app.get("/metrics")
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
