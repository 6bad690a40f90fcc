"""
UdhyogUnity Onboarding — FastAPI Backend
Business registration wizard: phone OTP, geo lookup, media uploads and
business account persistence.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from onboarding.config import settings
from onboarding.db.database import engine, init_models
from onboarding.errors import OnboardingError
from onboarding.routers import business_auth, wizard
from onboarding.routers.deps import http_status_for
from onboarding.services.sessions import WizardSessionRegistry

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Tests install their own registry before startup
    registry = getattr(app.state, "registry", None)
    owns_db = registry is None
    if owns_db:
        await init_models()
        registry = app.state.registry = WizardSessionRegistry()
    logger.info("Onboarding API starting (OTP backend: %s)", settings.OTP_BACKEND)
    yield
    await registry.close()
    if owns_db:
        await engine.dispose()
    logger.info("Onboarding API shut down.")


app = FastAPI(
    title="UdhyogUnity Onboarding API",
    description="Business registration wizard backend",
    version="1.0.0",
    lifespan=lifespan,
)

# ── CORS ───────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Errors ─────────────────────────────────────────────────
@app.exception_handler(OnboardingError)
async def onboarding_error_handler(request: Request, exc: OnboardingError):
    content = {"detail": exc.message}
    if exc.suggestion:
        content["suggestion"] = exc.suggestion
    return JSONResponse(status_code=http_status_for(exc), content=content)


# ── Routers ────────────────────────────────────────────────
app.include_router(wizard.router, prefix="/api/onboarding", tags=["Onboarding Wizard"])
app.include_router(business_auth.router, prefix="/api/business", tags=["Business Accounts"])


@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "UdhyogUnity Onboarding API"}
