"""Business registration wizard API endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Response

from onboarding.schemas import CATEGORY_OPTIONS, DOCUMENT_TYPES, BusinessType, PaymentMethod
from onboarding.schemas.wizard import (
    AddressLookup,
    CitySelect,
    CityOption,
    CoordinatesLookup,
    GeoResult,
    OTPResendResult,
    OTPSendRequest,
    OTPVerifyRequest,
    RegionOption,
    SessionCreated,
    SessionSnapshot,
    StateSelect,
    StepMove,
    StepResult,
    SubmitResult,
)
from onboarding.routers.deps import get_controller, get_registry
from onboarding.services.geo_resolver import GeoResolution
from onboarding.services.sessions import WizardSessionRegistry
from onboarding.services.wizard import StepOutcome, WizardController

router = APIRouter()
logger = logging.getLogger(__name__)

LOGIN_REDIRECT = "/business-login?registered=true"


def _snapshot(session_id: str, controller: WizardController) -> SessionSnapshot:
    return SessionSnapshot(session_id=session_id, **controller.snapshot())


def _step_result(outcome: StepOutcome, controller: WizardController, response: Response) -> StepResult:
    if not outcome.validated:
        response.status_code = 422
    return StepResult(
        step=outcome.step,
        current_step=controller.current_step,
        validated=outcome.validated,
        errors=outcome.errors,
    )


def _geo_result(resolution: GeoResolution | None) -> GeoResult:
    if resolution is None:
        return GeoResult(resolved=False)
    return GeoResult(
        resolved=True,
        state_matched=resolution.state_matched,
        city_matched=resolution.city_matched,
        patch=resolution.patch,
    )


# ── Sessions ───────────────────────────────────────────────

@router.post("/sessions", response_model=SessionCreated, status_code=201)
async def create_session(registry: WizardSessionRegistry = Depends(get_registry)):
    """Start a new registration at step 1 with an empty form."""
    session_id, controller = registry.create()
    return SessionCreated(session_id=session_id, current_step=controller.current_step)


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str, controller: WizardController = Depends(get_controller)):
    return _snapshot(session_id, controller)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, registry: WizardSessionRegistry = Depends(get_registry)):
    """Abandon a registration; the OTP countdown and pending lookups stop."""
    registry.discard(session_id)
    return Response(status_code=204)


@router.patch("/sessions/{session_id}/data", response_model=SessionSnapshot)
async def update_data(
    session_id: str,
    patch: dict[str, Any] = Body(...),
    controller: WizardController = Depends(get_controller),
):
    """Merge field edits for the current step. Keys may be camelCase or snake_case."""
    try:
        controller.update(patch)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _snapshot(session_id, controller)


# ── Navigation ─────────────────────────────────────────────

@router.post("/sessions/{session_id}/advance", response_model=StepResult)
async def advance(response: Response, controller: WizardController = Depends(get_controller)):
    """Move to the next step; 422 with field errors if the current step is incomplete."""
    outcome = controller.advance()
    return _step_result(outcome, controller, response)


@router.post("/sessions/{session_id}/retreat", response_model=StepMove)
async def retreat(controller: WizardController = Depends(get_controller)):
    return StepMove(current_step=controller.retreat())


# ── Phone OTP ──────────────────────────────────────────────

@router.post("/sessions/{session_id}/otp/send")
async def send_otp(
    data: OTPSendRequest | None = None,
    controller: WizardController = Depends(get_controller),
):
    await controller.send_otp(data.challenge_token if data else None)
    return controller.verification.snapshot()


@router.post("/sessions/{session_id}/otp/resend", response_model=OTPResendResult)
async def resend_otp(
    response: Response,
    data: OTPSendRequest | None = None,
    controller: WizardController = Depends(get_controller),
):
    """Re-send once the cooldown has elapsed; 429 while it is still running."""
    resent = await controller.resend_otp(data.challenge_token if data else None)
    if not resent:
        response.status_code = 429
    return OTPResendResult(resent=resent, cooldown_remaining=controller.verification.cooldown_remaining)


@router.post("/sessions/{session_id}/otp/verify")
async def verify_otp(data: OTPVerifyRequest, controller: WizardController = Depends(get_controller)):
    await controller.verify_otp(data.code)
    return controller.verification.snapshot()


# ── Geo ────────────────────────────────────────────────────

@router.post("/sessions/{session_id}/geo/address", response_model=GeoResult)
async def lookup_address(data: AddressLookup, controller: WizardController = Depends(get_controller)):
    """Debounced: a lookup superseded by a newer one returns resolved=false."""
    return _geo_result(await controller.resolve_address(data.address))


@router.post("/sessions/{session_id}/geo/coordinates", response_model=GeoResult)
async def lookup_coordinates(data: CoordinatesLookup, controller: WizardController = Depends(get_controller)):
    return _geo_result(await controller.resolve_coordinates(data.lat, data.lng))


@router.post("/sessions/{session_id}/geo/state", response_model=SessionSnapshot)
async def select_state(
    session_id: str,
    data: StateSelect,
    controller: WizardController = Depends(get_controller),
):
    await controller.select_state(data.code, data.name)
    return _snapshot(session_id, controller)


@router.post("/sessions/{session_id}/geo/city", response_model=SessionSnapshot)
async def select_city(
    session_id: str,
    data: CitySelect,
    controller: WizardController = Depends(get_controller),
):
    controller.select_city(data.id, data.name)
    return _snapshot(session_id, controller)


@router.get("/options")
async def form_options():
    """Fixed catalogues the form offers: categories, document types, payment methods."""
    return {
        "categories": CATEGORY_OPTIONS,
        "document_types": DOCUMENT_TYPES,
        "business_types": [t.value for t in BusinessType],
        "payment_methods": [m.value for m in PaymentMethod],
    }


@router.get("/states", response_model=list[RegionOption])
async def list_states(registry: WizardSessionRegistry = Depends(get_registry)):
    try:
        return await registry.reference.list_states()
    except Exception as e:
        logger.error("Failed to fetch states: %s", e)
        raise HTTPException(status_code=502, detail="Failed to load states")


@router.get("/states/{state_code}/cities", response_model=list[CityOption])
async def list_cities(state_code: str, registry: WizardSessionRegistry = Depends(get_registry)):
    try:
        return await registry.reference.list_cities(state_code)
    except Exception as e:
        logger.error("Failed to fetch cities for %s: %s", state_code, e)
        raise HTTPException(status_code=502, detail="Failed to load cities")


# ── Submission ─────────────────────────────────────────────

@router.post("/sessions/{session_id}/submit")
async def submit(
    session_id: str,
    response: Response,
    controller: WizardController = Depends(get_controller),
    registry: WizardSessionRegistry = Depends(get_registry),
):
    """
    Upload every asset and persist the registration.

    Responses:
        200 done (warning set if the login account could not be linked)
        422 consent missing
        502 an upload or the business record write failed; the session is kept
    """
    result = await controller.submit()
    if isinstance(result, StepOutcome):
        return _step_result(result, controller, response)

    if not result.ok:
        response.status_code = 502
        return SubmitResult(
            status=result.status.value,
            business_id=result.business_id,
            upload_failures=result.upload_failures,
            message=result.primary_failure,
        )

    registry.discard(session_id)
    return SubmitResult(
        status=result.status.value,
        business_id=result.business_id,
        warning=result.secondary_failure,
        next=LOGIN_REDIRECT,
    )
