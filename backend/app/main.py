"""
MailMint Backend API
FastAPI application for inbound email verification and classification.
"""

import logging
import os

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.config import Settings
from app.db import supabase_admin
from app.routers import webhooks

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

settings = Settings.from_env()

app = FastAPI(
    title="MailMint API",
    description="Inbound email verification, classification and document extraction",
    version="0.1.0",
)

# CORS configuration, origins resolved at startup from environment
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])


@app.on_event("startup")
async def log_startup() -> None:
    """Log where the API listens and whether webhooks are authenticated."""
    host_port = os.getenv("HOST_PORT", "8000")
    logger.info("MailMint API running at http://localhost:%s (env=%s)", host_port, settings.app_env)
    if not settings.webhook_secret:
        if settings.allow_unsigned_webhooks:
            logger.warning(
                "POSTMARK_WEBHOOK_SECRET is not set; inbound webhooks are accepted unsigned"
            )
        else:
            logger.error(
                "POSTMARK_WEBHOOK_SECRET is not set; all inbound webhooks will be rejected"
            )


@app.get("/")
async def root():
    return {"message": "MailMint API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/health/db")
async def health_db():
    """
    Test the Supabase database connection.

    Executes a lightweight query (SELECT 1 row from emails). Returns 503 on
    failure.
    """
    if supabase_admin is None:
        raise HTTPException(
            status_code=503,
            detail="Database client unavailable: SUPABASE_SERVICE_KEY is not configured",
        )

    try:
        supabase_admin.table("emails").select("id").limit(1).execute()
        return {"status": "ok", "database": "reachable"}
    except Exception as exc:
        logger.error(f"Database health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Database connection failed: {str(exc)}",
        )
