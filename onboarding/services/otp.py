"""
Local OTP Provider — generation, hashing, delivery and verification
without a hosted identity service.

Security:
  - 6-digit numeric codes
  - Hashed with bcrypt before storage
  - Stored in Redis under the session handle with a 10-minute TTL
  - Delivered through the configured SMS gateway
"""

import logging
import secrets
import uuid

import bcrypt
import httpx
import redis.asyncio as aioredis

from onboarding.config import settings
from onboarding.errors import VerificationError

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Singleton Redis connection."""
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


def generate_code() -> str:
    return f"{secrets.randbelow(1000000):06d}"


async def send_sms(phone_e164: str, text: str) -> bool:
    """
    Deliver a text message through the SMS gateway.

    Returns:
        True if the gateway accepted the message, False otherwise.
    """
    if not settings.SMS_GATEWAY_URL:
        logger.error("SMS_GATEWAY_URL not configured, cannot deliver OTP")
        return False

    headers = {}
    if settings.SMS_GATEWAY_TOKEN:
        headers["Authorization"] = f"Bearer {settings.SMS_GATEWAY_TOKEN}"

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            resp = await client.post(
                settings.SMS_GATEWAY_URL,
                json={"to": phone_e164, "text": text},
                headers=headers,
            )
            if resp.status_code in (200, 201, 202):
                logger.info("SMS sent: to=...%s", phone_e164[-4:])
                return True
            logger.warning(
                "SMS gateway rejected message: status=%s, body=%s",
                resp.status_code,
                resp.text[:200],
            )
            return False
    except Exception as e:
        logger.error("SMS gateway error: to=...%s, error=%s", phone_e164[-4:], str(e))
        return False


class LocalOTPProvider:
    """Phone OTP provider backed by Redis and an SMS gateway."""

    async def send_code(self, phone_e164: str, challenge_token: str | None = None) -> str:
        """
        Generate a 6-digit OTP, store its bcrypt hash in Redis and text it.

        Returns:
            Opaque session handle for confirm_code()
        """
        handle = uuid.uuid4().hex
        otp = generate_code()
        otp_hash = bcrypt.hashpw(otp.encode(), bcrypt.gensalt()).decode()

        r = await get_redis()
        key = f"otp:{handle}"

        await r.hset(key, mapping={
            "hash": otp_hash,
            "phone": phone_e164,
            "attempts": "0",
        })
        await r.expire(key, settings.OTP_TTL_SEC)

        delivered = await send_sms(
            phone_e164, f"Your verification code is {otp}. It expires in 10 minutes.",
        )
        if not delivered:
            await r.delete(key)
            raise VerificationError("Failed to send OTP. Please try again.")

        return handle

    async def confirm_code(self, handle: str, code: str) -> bool:
        """Check a code against the stored hash. Expired sessions never match."""
        r = await get_redis()
        key = f"otp:{handle}"

        data = await r.hgetall(key)
        if not data:
            return False

        await r.hincrby(key, "attempts", 1)

        if bcrypt.checkpw(code.encode(), data["hash"].encode()):
            await r.delete(key)  # Invalidate on success
            return True
        return False
