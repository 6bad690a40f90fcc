"""Shared router dependencies and error → HTTP status mapping."""

from fastapi import Request

from onboarding.errors import (
    BusinessAccountNotFoundError,
    DocumentStoreError,
    EmailInUseError,
    ForeignFieldsError,
    IdentityError,
    InvalidCredentialsError,
    OnboardingError,
    PhoneMismatchError,
    QuotaExceededError,
    SessionNotFoundError,
    UploadFailedError,
    VerificationError,
    WizardError,
)
from onboarding.services.sessions import WizardSessionRegistry
from onboarding.services.wizard import WizardController

# Most specific first
_STATUS_MAP: list[tuple[type[OnboardingError], int]] = [
    (SessionNotFoundError, 404),
    (BusinessAccountNotFoundError, 404),
    (ForeignFieldsError, 422),
    (WizardError, 409),
    (VerificationError, 400),
    (InvalidCredentialsError, 401),
    (EmailInUseError, 409),
    (QuotaExceededError, 429),
    (PhoneMismatchError, 400),
    (IdentityError, 502),
    (UploadFailedError, 502),
    (DocumentStoreError, 500),
]


def http_status_for(exc: OnboardingError) -> int:
    for error_type, status in _STATUS_MAP:
        if isinstance(exc, error_type):
            return status
    return 400


def get_registry(request: Request) -> WizardSessionRegistry:
    return request.app.state.registry


def get_controller(session_id: str, request: Request) -> WizardController:
    return get_registry(request).get(session_id)
