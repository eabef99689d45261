"""
AI Mastering backend API
Download entitlements, Stripe checkout/webhook, download history and re-download.
"""
from dotenv import load_dotenv
load_dotenv()

import logging
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

from app.core.config import get_settings

settings = get_settings()

# Render/Vercel capture stdout; logging module is more reliable than print
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True  # Override any existing configuration
)

logger = logging.getLogger(__name__)


def run_migrations() -> None:
    """Run Alembic migrations on startup. Uses alembic.ini and DATABASE_URL.
    Fails startup if migrations fail, so the DB is never left out of sync."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        logger.warning("alembic.ini not found, skipping Alembic migrations")
        return
    try:
        alembic_cfg = Config(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
        alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url.replace("%", "%%"))
        command.upgrade(alembic_cfg, "head")
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.exception("Alembic migration failed: %s", e)
        raise  # Fail startup; fix migration or env and redeploy


from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.api.routes import downloads, signup, stripe as stripe_router, webhooks
from app.core.errors import ApiError

app = FastAPI(title="AI Mastering API")


@app.on_event("startup")
async def startup_event():
    """Report missing configuration, then run Alembic migrations on every server restart."""
    for warning in settings.startup_warnings():
        logger.warning("[CONFIG] %s", warning)
    run_migrations()


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_origin_regex=r"https://.*\.vercel\.app",  # Vercel preview deployments
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(downloads.router, prefix="/api", tags=["Downloads"])
app.include_router(stripe_router.router, prefix="/api", tags=["Checkout"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(signup.router, prefix="/api", tags=["Signup"])


@app.get("/health")
def health():
    return {"status": "ok"}
