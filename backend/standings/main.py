import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from standings.database import init_db
from standings.routes import leaderboard, match_results
from standings.services.recalculation_queue import shutdown_recalculation_queue

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Tournament Standings API")

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(match_results.router, prefix="/api", tags=["match-results"])
app.include_router(leaderboard.router, prefix="/api", tags=["leaderboard"])


@app.on_event("startup")
def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    logger.info("Tournament Standings API started with %d routes", len(app.routes))


@app.on_event("shutdown")
def on_shutdown():
    # Let in-flight recalculations finish; partial standings are worse than late ones
    shutdown_recalculation_queue(wait=True)


@app.get("/api/health")
def health_check():
    return {"app_name": "Tournament Standings API", "status": "healthy"}


def run():
    """Console entry point: serve the API with uvicorn"""
    import uvicorn

    uvicorn.run(
        "standings.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").lower(),
    )
