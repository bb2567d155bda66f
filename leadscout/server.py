"""
LeadScout Server

Thin FastAPI binding of the pipeline operations.

Endpoints:
- POST /chat/store: Append a question/answer pair to a session
- POST /chat/generate-leads: Generate leads for a session
- GET /chat/health: Cache and generation health
- POST /chat/clear-expired: Sweep expired sessions
- GET /chat/{session_id}: Session details
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .common.config import LeadScoutConfig, check_search_config, ensure_directories, load_config
from .common.errors import (
    InsufficientDataError,
    LeadScoutError,
    NotFoundError,
    ValidationError,
)
from .pipeline import LeadPipeline

logger = logging.getLogger("leadscout.server")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Global state
config: Optional[LeadScoutConfig] = None
pipeline: Optional[LeadPipeline] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, pipeline

    logger.info("Starting up...")
    ensure_directories()

    if pipeline is None:
        config = load_config()
        pipeline = LeadPipeline.from_config(config)
        report = check_search_config(config)
        for issue in report["issues"]:
            logger.warning("Search config: %s", issue)
        for tip in report["recommendations"]:
            logger.info("Search config: %s", tip)
    logger.info(
        "Pipeline ready (search strategies: %s)",
        " -> ".join(pipeline.search_engine.strategy_chain()),
    )

    pipeline.sessions.start_sweeper()

    yield

    logger.info("Shutting down...")
    await pipeline.sessions.stop_sweeper()


app = FastAPI(
    title="LeadScout",
    description="Conversational lead generation over an embedded business corpus",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class StoreRequest(BaseModel):
    """appendAnswer request"""
    chatId: Optional[str] = None
    question: Optional[str] = None
    answer: Optional[str] = None


class GenerateRequest(BaseModel):
    """generateLeads request"""
    chatId: Optional[str] = None


# =============================================================================
# Error mapping
# =============================================================================

def _status_for(error: LeadScoutError) -> int:
    if isinstance(error, (ValidationError, InsufficientDataError)):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    return 500


@app.exception_handler(LeadScoutError)
async def leadscout_error_handler(request: Request, exc: LeadScoutError):
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status,
        content={"success": False, "code": exc.code, **exc.to_dict()},
    )


# =============================================================================
# Endpoints
# =============================================================================

@app.post("/chat/store")
def store_answer(body: StoreRequest):
    result = pipeline.append_answer(body.chatId, body.question, body.answer)
    return {
        "success": True,
        "message": "Question and answer stored successfully",
        "data": result.model_dump(mode="json", by_alias=True),
    }


@app.post("/chat/generate-leads")
async def generate_leads(body: GenerateRequest):
    result = await pipeline.generate_leads(body.chatId)
    return {
        "success": True,
        "data": result.model_dump(mode="json", by_alias=True),
    }


@app.get("/chat/health")
def health():
    report = pipeline.get_health()
    return {"success": True, "data": report.model_dump(mode="json", by_alias=True)}


@app.post("/chat/clear-expired")
def clear_expired():
    result = pipeline.clear_expired()
    return {
        "success": True,
        "message": f"Cleared {result.cleared_count} expired sessions",
        "data": result.model_dump(mode="json", by_alias=True),
    }


@app.get("/chat/{session_id}")
def session_info(session_id: str):
    info = pipeline.get_session_info(session_id)
    return {"success": True, "data": info.model_dump(mode="json", by_alias=True)}


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the LeadScout server"""
    import uvicorn

    server_config = load_config().server
    logging.basicConfig(level=server_config.log_level, format=LOG_FORMAT)

    logger.info("Starting server on %s:%d", server_config.host, server_config.port)
    uvicorn.run(
        "leadscout.server:app",
        host=server_config.host,
        port=server_config.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
