"""Pydantic schemas for the onboarding wizard and business auth endpoints."""

from __future__ import annotations
from typing import Any

from pydantic import BaseModel, Field


class SessionCreated(BaseModel):
    session_id: str
    current_step: int


class SessionSnapshot(BaseModel):
    """Full wizard state as returned by GET /sessions/{id}."""
    session_id: str
    current_step: int
    finished: bool
    data: dict[str, Any]
    media: dict[str, Any]
    step_errors: dict[str, dict[str, str]]
    verification: dict[str, Any]
    submission_status: str


class StepResult(BaseModel):
    step: int
    current_step: int
    validated: bool
    errors: dict[str, str] = Field(default_factory=dict)


class StepMove(BaseModel):
    current_step: int


# ── Phone OTP ──────────────────────────────────────────────

class OTPSendRequest(BaseModel):
    """Challenge token from the anti-abuse widget (reCAPTCHA)."""
    challenge_token: str | None = None


class OTPVerifyRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=10)


class OTPResendResult(BaseModel):
    resent: bool
    cooldown_remaining: int


# ── Geo ────────────────────────────────────────────────────

class AddressLookup(BaseModel):
    address: str


class CoordinatesLookup(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class StateSelect(BaseModel):
    code: str
    name: str | None = None


class CitySelect(BaseModel):
    id: str
    name: str | None = None


class GeoResult(BaseModel):
    resolved: bool
    state_matched: bool = False
    city_matched: bool = False
    patch: dict[str, Any] = Field(default_factory=dict)


class RegionOption(BaseModel):
    code: str
    name: str


class CityOption(BaseModel):
    id: str
    name: str


# ── Submission ─────────────────────────────────────────────

class SubmitResult(BaseModel):
    status: str
    business_id: str | None = None
    upload_failures: list[str] = Field(default_factory=list)
    message: str | None = None
    warning: str | None = None
    next: str | None = None


# ── Business auth ──────────────────────────────────────────

class BusinessSignUp(BaseModel):
    email: str
    password: str = Field(..., min_length=6)
    business_name: str = ""
    contact_person: str = ""
    phone: str = ""
    business_type: str = ""


class BusinessSignIn(BaseModel):
    email: str
    password: str


class EmailPhoneCheck(BaseModel):
    email: str
    phone: str


class BusinessAccount(BaseModel):
    uid: str | None = None
    id_token: str | None = None
    user: dict[str, Any]
