"""FastAPI application entry point.

Run with: uvicorn api.main:app --reload --port 8050
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models.base import Base, engine
from api.routers import blog, chart, strategies

VERSION = "1.0.0"

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    logger.info("Creating database tables...")
    import api.models.strategy_bot  # noqa: F401
    import api.models.backtest  # noqa: F401
    import api.models.blog  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database ready.")

    yield

    logger.info("Shutting down.")


app = FastAPI(
    title="QuantMentor API",
    description="AI strategy bots, market blog and chart analysis",
    version=VERSION,
    lifespan=lifespan,
)

# CORS: the dashboard is served from another origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _describe(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Rejected %s %s: %s", request.method, request.url.path, _describe(exc))
    return JSONResponse({"error": _describe(exc)}, status_code=400)


# Register routers
app.include_router(strategies.router)
app.include_router(blog.router)
app.include_router(chart.router)


@app.get("/api/health")
def health_check():
    return {"status": "ok", "version": VERSION}
