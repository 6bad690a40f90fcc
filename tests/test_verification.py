"""Tests for the phone OTP state machine and its resend cooldown."""

import asyncio

import pytest

from onboarding.errors import InvalidCodeLengthError, InvalidOTPError, InvalidPhoneError, NoSessionError
from onboarding.services.identity import ChallengeSession
from onboarding.services.verification import (
    CountdownTimer,
    SessionStatus,
    VerificationState,
    VerificationStateMachine,
)

from conftest import VALID_CODE, FakeOTPProvider


# ── Challenge ──────────────────────────────────────────────

def test_challenge_token_is_single_use():
    challenge = ChallengeSession()
    assert not challenge.active

    challenge.create("recaptcha-1")
    assert challenge.consume() == "recaptcha-1"
    assert challenge.consume() is None

    challenge.create()
    assert challenge.active
    challenge.clear()
    assert not challenge.active


# ── Countdown ──────────────────────────────────────────────

@pytest.mark.asyncio
async def test_countdown_ticks_to_zero():
    ticks = []
    timer = CountdownTimer(3, tick=0.01, on_tick=ticks.append)
    timer.start()
    await asyncio.sleep(0.1)

    assert timer.remaining == 0
    assert ticks == [3, 2, 1, 0]
    assert not timer.running


@pytest.mark.asyncio
async def test_countdown_restart_cancels_previous():
    timer = CountdownTimer(5, tick=0.01)
    timer.start()
    await asyncio.sleep(0.025)
    timer.start()

    assert timer.remaining == 5
    timer.cancel()
    assert not timer.running


# ── Send / verify ──────────────────────────────────────────

@pytest.mark.asyncio
async def test_send_otp_uses_country_prefix_and_arms_cooldown():
    provider = FakeOTPProvider()
    machine = VerificationStateMachine(provider, cooldown=60, tick=0.01)

    session = await machine.send_otp("9876543210", challenge_token="captcha")

    assert provider.sent == [("+919876543210", "captcha")]
    assert machine.state == VerificationState.SENT
    assert session.status == SessionStatus.PENDING
    assert machine.cooldown_remaining == 60
    machine.teardown()


@pytest.mark.asyncio
async def test_send_otp_rejects_invalid_phone():
    machine = VerificationStateMachine(FakeOTPProvider())
    for phone in ("", "12345", "98765432100", "98765abcde"):
        with pytest.raises(InvalidPhoneError):
            await machine.send_otp(phone)
    assert machine.state == VerificationState.IDLE


@pytest.mark.asyncio
async def test_verify_without_send():
    machine = VerificationStateMachine(FakeOTPProvider())
    with pytest.raises(NoSessionError):
        await machine.verify_otp(VALID_CODE)


@pytest.mark.asyncio
async def test_verify_rejects_wrong_length_before_provider():
    machine = VerificationStateMachine(FakeOTPProvider(), tick=0.01)
    await machine.send_otp("9876543210")

    with pytest.raises(InvalidCodeLengthError):
        await machine.verify_otp("12345")
    assert machine.session.attempts_outstanding == 0
    machine.teardown()


@pytest.mark.asyncio
async def test_wrong_code_keeps_state_sent():
    machine = VerificationStateMachine(FakeOTPProvider(), tick=0.01)
    await machine.send_otp("9876543210")

    with pytest.raises(InvalidOTPError) as exc:
        await machine.verify_otp("000000")

    assert exc.value.message == "Invalid OTP. Please try again."
    assert machine.state == VerificationState.SENT
    assert machine.session.status == SessionStatus.FAILED
    assert machine.session.attempts_outstanding == 1
    machine.teardown()


@pytest.mark.asyncio
async def test_correct_code_verifies_and_stops_countdown():
    machine = VerificationStateMachine(FakeOTPProvider(), cooldown=60, tick=0.01)
    await machine.send_otp("9876543210")

    session = await machine.verify_otp(VALID_CODE)

    assert session.status == SessionStatus.VERIFIED
    assert machine.state == VerificationState.VERIFIED
    assert machine.is_verified_for("9876543210")
    assert not machine.is_verified_for("9876543211")
    assert not machine.timer.running


@pytest.mark.asyncio
async def test_send_to_new_number_discards_session():
    provider = FakeOTPProvider()
    machine = VerificationStateMachine(provider, tick=0.01)
    await machine.send_otp("9876543210")
    await machine.verify_otp(VALID_CODE)

    await machine.send_otp("9123456780")

    assert machine.state == VerificationState.SENT
    assert machine.session.phone_number == "9123456780"
    assert not machine.is_verified_for("9876543210")
    machine.teardown()


# ── Resend ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_resend_blocked_during_cooldown():
    provider = FakeOTPProvider()
    machine = VerificationStateMachine(provider, cooldown=60, tick=0.01)
    await machine.send_otp("9876543210")

    assert await machine.resend_otp() is False
    assert len(provider.sent) == 1
    machine.teardown()


@pytest.mark.asyncio
async def test_resend_without_session_is_noop():
    machine = VerificationStateMachine(FakeOTPProvider())
    assert await machine.resend_otp() is False


@pytest.mark.asyncio
async def test_resend_after_cooldown_recreates_challenge_and_rearms():
    provider = FakeOTPProvider()
    machine = VerificationStateMachine(provider, cooldown=3, tick=0.01)
    await machine.send_otp("9876543210", challenge_token="first")
    generation = machine.challenge.generation
    await asyncio.sleep(0.1)
    assert machine.cooldown_remaining == 0

    assert await machine.resend_otp(challenge_token="second") is True

    assert provider.sent[-1] == ("+919876543210", "second")
    assert machine.challenge.generation == generation + 1
    assert machine.cooldown_remaining == 3
    assert machine.session.handle == "handle-2"

    # Only the latest handle verifies
    await machine.verify_otp(VALID_CODE)
    assert machine.state == VerificationState.VERIFIED


@pytest.mark.asyncio
async def test_countdown_expiry_does_not_reset_state():
    machine = VerificationStateMachine(FakeOTPProvider(), cooldown=2, tick=0.01)
    await machine.send_otp("9876543210")
    await asyncio.sleep(0.1)

    assert machine.state == VerificationState.SENT
    assert machine.session.cooldown_remaining == 0


# ── Teardown ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_teardown_drops_pending_session_and_stops_timer():
    machine = VerificationStateMachine(FakeOTPProvider(), cooldown=60, tick=0.01)
    await machine.send_otp("9876543210", challenge_token="captcha")

    machine.teardown()

    assert machine.state == VerificationState.IDLE
    assert machine.session is None
    assert not machine.timer.running
    assert not machine.challenge.active


@pytest.mark.asyncio
async def test_teardown_keeps_verified_session():
    machine = VerificationStateMachine(FakeOTPProvider(), tick=0.01)
    await machine.send_otp("9876543210")
    await machine.verify_otp(VALID_CODE)

    machine.teardown()

    assert machine.is_verified_for("9876543210")
