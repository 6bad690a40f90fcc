"""
Phone Verification — OTP send / verify / resend with a resend cooldown.

States:
  idle → sent      send_otp()
  sent → sent      send_otp() again, or resend_otp() once the countdown hits 0
  sent → verified  verify_otp() with the right code

The countdown only gates resend; it never moves the machine back to idle.
There is no cap on failed verify attempts.
"""

from __future__ import annotations
import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from onboarding.config import settings
from onboarding.errors import InvalidCodeLengthError, InvalidOTPError, InvalidPhoneError, NoSessionError
from onboarding.services.identity import ChallengeSession, PhoneOTPProvider
from onboarding.services.phone import format_phone, is_valid_phone

logger = logging.getLogger(__name__)

CODE_RE = re.compile(r"^\d{6}$")


class VerificationState(str, Enum):
    IDLE = "idle"
    SENT = "sent"
    VERIFIED = "verified"


class SessionStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class VerificationSession:
    phone_number: str
    handle: str
    sent_at: datetime
    cooldown_remaining: int
    status: SessionStatus = SessionStatus.PENDING
    attempts_outstanding: int = 0


class CountdownTimer:
    """One-second-tick countdown running as a single asyncio task."""

    def __init__(
        self,
        seconds: int,
        tick: float = 1.0,
        on_tick: Callable[[int], None] | None = None,
    ):
        self.seconds = seconds
        self.tick = tick
        self.on_tick = on_tick
        self.remaining = 0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """(Re)arm the countdown at its full length. Any running countdown is cancelled."""
        self.cancel()
        self.remaining = self.seconds
        self._notify()
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while self.remaining > 0:
            await asyncio.sleep(self.tick)
            self.remaining -= 1
            self._notify()

    def _notify(self) -> None:
        if self.on_tick is not None:
            self.on_tick(self.remaining)


class VerificationStateMachine:
    """Phone-OTP lifecycle for one registration."""

    def __init__(
        self,
        provider: PhoneOTPProvider,
        challenge: ChallengeSession | None = None,
        cooldown: int | None = None,
        tick: float = 1.0,
    ):
        self.provider = provider
        self.challenge = challenge or ChallengeSession()
        self.state = VerificationState.IDLE
        self.session: VerificationSession | None = None
        self.timer = CountdownTimer(
            cooldown if cooldown is not None else settings.OTP_COOLDOWN_SEC,
            tick=tick,
            on_tick=self._on_tick,
        )

    @property
    def cooldown_remaining(self) -> int:
        return self.timer.remaining

    def is_verified_for(self, phone: str) -> bool:
        return (
            self.state == VerificationState.VERIFIED
            and self.session is not None
            and self.session.phone_number == phone
        )

    def _on_tick(self, remaining: int) -> None:
        if self.session is not None:
            self.session.cooldown_remaining = remaining

    async def _dispatch(self, phone: str) -> str:
        token = self.challenge.consume()
        return await self.provider.send_code(format_phone(phone), token)

    async def send_otp(self, phone: str, challenge_token: str | None = None) -> VerificationSession:
        """
        Send a code to ``phone`` and arm the resend countdown.

        A send for a different number discards the previous session; a send
        for the same number replaces its handle.

        Raises:
            InvalidPhoneError: if phone is not exactly 10 digits
        """
        if not is_valid_phone(phone):
            raise InvalidPhoneError(phone)

        if self.session is not None and self.session.phone_number != phone:
            logger.info("Phone changed, discarding OTP session for ...%s", self.session.phone_number[-4:])
            self.session = None
            self.state = VerificationState.IDLE

        if challenge_token is not None or not self.challenge.active:
            self.challenge.create(challenge_token)

        handle = await self._dispatch(phone)
        self.session = VerificationSession(
            phone_number=phone,
            handle=handle,
            sent_at=datetime.now(timezone.utc),
            cooldown_remaining=self.timer.seconds,
        )
        self.state = VerificationState.SENT
        self.timer.start()
        logger.info("OTP sent to ...%s", phone[-4:])
        return self.session

    async def resend_otp(self, challenge_token: str | None = None) -> bool:
        """
        Re-send to the same phone once the countdown has reached 0.

        The spent challenge is cleared and a fresh one created before the
        send. Returns False (and does nothing) while the countdown runs or
        when there is no pending session.
        """
        if self.session is None or self.state != VerificationState.SENT:
            return False
        if self.timer.remaining > 0:
            return False

        self.challenge.clear()
        self.challenge.create(challenge_token)

        handle = await self._dispatch(self.session.phone_number)
        self.session.handle = handle
        self.session.sent_at = datetime.now(timezone.utc)
        self.session.status = SessionStatus.PENDING
        self.timer.start()
        logger.info("OTP resent to ...%s", self.session.phone_number[-4:])
        return True

    async def verify_otp(self, code: str) -> VerificationSession:
        """
        Confirm the code for the outstanding session.

        Raises:
            NoSessionError: if no code has been sent
            InvalidCodeLengthError: if code is not exactly 6 digits
            InvalidOTPError: if the provider rejects the code (state stays sent)
        """
        if self.session is None:
            raise NoSessionError()
        if not CODE_RE.match(code or ""):
            raise InvalidCodeLengthError()
        if self.state == VerificationState.VERIFIED:
            return self.session

        self.session.attempts_outstanding += 1
        if not await self.provider.confirm_code(self.session.handle, code):
            self.session.status = SessionStatus.FAILED
            logger.info(
                "OTP rejected for ...%s (attempt %d)",
                self.session.phone_number[-4:], self.session.attempts_outstanding,
            )
            raise InvalidOTPError()

        self.session.status = SessionStatus.VERIFIED
        self.session.attempts_outstanding = 0
        self.state = VerificationState.VERIFIED
        self.timer.cancel()
        logger.info("Phone verified: ...%s", self.session.phone_number[-4:])
        return self.session

    def teardown(self) -> None:
        """
        Leave the verification UI: stop the countdown and drop a pending
        session without revoking it. A completed verification is kept.
        """
        self.timer.cancel()
        if self.state == VerificationState.SENT:
            self.session = None
            self.state = VerificationState.IDLE
        self.challenge.clear()

    def snapshot(self) -> dict:
        session = self.session
        return {
            "state": self.state.value,
            "phone_number": session.phone_number if session else None,
            "status": session.status.value if session else None,
            "sent_at": session.sent_at.isoformat() if session else None,
            "cooldown_remaining": self.timer.remaining,
            "attempts_outstanding": session.attempts_outstanding if session else 0,
        }
