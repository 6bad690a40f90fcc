"""
Identity Provider — email/password accounts and phone OTP through the
Firebase Identity Toolkit REST API.

The anti-abuse challenge (reCAPTCHA token) is an explicit ChallengeSession
owned by whoever drives the phone verification. Tokens are single-use:
Firebase rejects a token that was already spent on a previous send.
"""

from __future__ import annotations
import logging
import secrets
from dataclasses import dataclass
from typing import Protocol

import httpx

from onboarding.config import settings
from onboarding.errors import (
    EmailInUseError,
    IdentityError,
    InvalidCredentialsError,
    InvalidPhoneError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:{method}"

INVALID_CREDENTIAL_CODES = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_EMAIL",
    "USER_DISABLED",
}
QUOTA_CODES = {"QUOTA_EXCEEDED", "TOO_MANY_ATTEMPTS_TRY_LATER"}
INVALID_CODE_CODES = {"INVALID_CODE", "SESSION_EXPIRED", "INVALID_SESSION_INFO", "CODE_EXPIRED"}


@dataclass
class IdentityToken:
    uid: str
    id_token: str
    email: str | None = None
    phone_number: str | None = None


class ChallengeSession:
    """
    One anti-abuse challenge for phone OTP sends.

    create() installs a fresh token, clear() discards it. A token may be
    consumed once; a second send needs a new create().
    """

    def __init__(self, token: str | None = None):
        self._token: str | None = None
        self._consumed = False
        self.generation = 0
        if token is not None:
            self.create(token)

    @property
    def active(self) -> bool:
        return self._token is not None and not self._consumed

    def create(self, token: str | None = None) -> ChallengeSession:
        """Install a new challenge token; a random nonce when none is supplied."""
        self._token = token or secrets.token_urlsafe(24)
        self._consumed = False
        self.generation += 1
        return self

    def clear(self) -> None:
        self._token = None
        self._consumed = False

    def consume(self) -> str | None:
        """Hand out the token for one send. Returns None if nothing is armed."""
        if not self.active:
            return None
        self._consumed = True
        return self._token


class PhoneOTPProvider(Protocol):
    async def send_code(self, phone_e164: str, challenge_token: str | None) -> str:
        """Send an OTP and return an opaque session handle."""
        ...

    async def confirm_code(self, handle: str, code: str) -> bool:
        """Return True if the code matches the session."""
        ...


class FirebaseIdentityProvider:
    """Firebase Identity Toolkit client (email/password and phone OTP)."""

    def __init__(self, api_key: str | None = None, http: httpx.AsyncClient | None = None):
        self.api_key = api_key or settings.FIREBASE_API_KEY
        self._http = http

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SEC)
        return self._http

    async def _call(self, method: str, payload: dict) -> dict:
        http = await self._client()
        try:
            resp = await http.post(
                IDENTITY_TOOLKIT_URL.format(method=method),
                params={"key": self.api_key},
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.error("Identity provider unreachable (%s): %s", method, e)
            raise IdentityError("Identity provider unavailable. Please try again.") from e

        try:
            body = resp.json() if resp.content else {}
        except ValueError as e:
            logger.error("Identity provider returned a non-JSON body (%s): status=%s", method, resp.status_code)
            raise IdentityError("Identity provider unavailable. Please try again.") from e
        if resp.status_code == 200:
            return body

        code = (body.get("error") or {}).get("message", "")
        # Firebase appends details after " : " (e.g. "TOO_MANY_ATTEMPTS_TRY_LATER : ...")
        code = code.split(" ")[0]
        logger.warning("Identity provider error: method=%s code=%s", method, code)
        raise _map_error(code, payload)

    # ── Email / password ───────────────────────────────────

    async def sign_up(self, email: str, password: str) -> IdentityToken:
        body = await self._call(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return IdentityToken(uid=body["localId"], id_token=body["idToken"], email=body.get("email"))

    async def sign_in(self, email: str, password: str) -> IdentityToken:
        body = await self._call(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return IdentityToken(uid=body["localId"], id_token=body["idToken"], email=body.get("email"))

    # ── Phone OTP ──────────────────────────────────────────

    async def send_code(self, phone_e164: str, challenge_token: str | None) -> str:
        payload = {"phoneNumber": phone_e164}
        if challenge_token:
            payload["recaptchaToken"] = challenge_token
        body = await self._call("sendVerificationCode", payload)
        logger.info("OTP sent via Firebase to ...%s", phone_e164[-4:])
        return body["sessionInfo"]

    async def confirm_code(self, handle: str, code: str) -> bool:
        try:
            await self._call("signInWithPhoneNumber", {"sessionInfo": handle, "code": code})
        except _InvalidCode:
            return False
        return True

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


class _InvalidCode(IdentityError):
    pass


def _map_error(code: str, payload: dict) -> IdentityError:
    if code == "EMAIL_EXISTS":
        return EmailInUseError(payload.get("email", ""))
    if code in INVALID_CREDENTIAL_CODES:
        return InvalidCredentialsError()
    if code in QUOTA_CODES:
        return QuotaExceededError()
    if code in INVALID_CODE_CODES:
        return _InvalidCode(code)
    if code == "INVALID_PHONE_NUMBER":
        return InvalidPhoneError(payload.get("phoneNumber"))
    if code.startswith("CAPTCHA") or "RECAPTCHA" in code:
        return IdentityError(
            "Could not verify phone number. Please refresh the page and try again.",
        )
    return IdentityError(f"Identity provider error: {code or 'unknown'}")
