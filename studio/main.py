import os
import time
import logging
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI

# Pipeline modules read their config at import time
load_dotenv()

from . import metrics
from .pipeline import pipeline_router
from .pipeline.gateway import API_BASE
from .pipeline.orchestrator import PipelineOrchestrator
from .pipeline.routes import get_orchestrator

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Studio starting up (backend={API_BASE})")
    metrics.set_gauge("start_time", time.time())
    metrics.set_gauge("active_runs", 0)
    yield
    # Shutdown: no persistence, an in-flight run is simply abandoned
    orchestrator = app.dependency_overrides.get(get_orchestrator, get_orchestrator)()
    if orchestrator.cancel():
        logger.info("Cancelled in-flight run on shutdown")
    logger.info("Studio shutting down...")

app = FastAPI(lifespan=lifespan)
app.include_router(pipeline_router)


@app.get("/health")
def health_check(orchestrator: PipelineOrchestrator = Depends(get_orchestrator)):
    """Verify the service is running and report the backend it talks to."""
    return {
        "status": "ok",
        "api_base": API_BASE,
        "run_in_progress": orchestrator.busy,
    }


@app.get("/metrics")
def metrics_endpoint():
    """Return a snapshot of all service metrics."""
    return metrics.get_snapshot()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    uvicorn.run("studio.main:app", host="0.0.0.0", port=port, reload=True)
