"""
Business account authentication — email/password accounts in the identity
provider, paired with a BusinessUsers record in the document store.

Flow:
  1. sign_up    → identity account + BusinessUsers record (unverified)
  2. register   → wizard submission marks the record registered
  3. sign_in    → identity sign-in, then the BusinessUsers record must exist
"""

from __future__ import annotations
import logging

from onboarding.errors import BusinessAccountNotFoundError, PhoneMismatchError
from onboarding.services import business_db
from onboarding.services.document_store import DocumentStore
from onboarding.services.identity import FirebaseIdentityProvider, IdentityToken
from onboarding.services.phone import format_phone, normalize_phone

logger = logging.getLogger(__name__)

NOT_REGISTERED_MESSAGE = (
    "No business account found with this email. Please register your business first."
)


async def business_sign_up(
    identity: FirebaseIdentityProvider,
    store: DocumentStore,
    email: str,
    password: str,
    data: dict,
) -> tuple[IdentityToken, dict]:
    """
    Create the identity account and its BusinessUsers record.

    Raises:
        EmailInUseError: if the email already has an identity account
    """
    token = await identity.sign_up(email, password)
    user = await business_db.add_business_user(store, email, {**data, "isVerified": False})
    logger.info("Business account created: email=%s uid=%s", email, token.uid)
    return token, user


async def business_sign_in(
    identity: FirebaseIdentityProvider,
    store: DocumentStore,
    email: str,
    password: str,
) -> tuple[IdentityToken, dict]:
    """
    Sign in and load the business account.

    Raises:
        InvalidCredentialsError: on a wrong email/password
        BusinessAccountNotFoundError: if the identity exists but no business was registered
    """
    token = await identity.sign_in(email, password)
    user = await business_db.get_business_user(store, email=email)
    if user is None:
        logger.info("Sign-in without business account: email=%s", email)
        raise BusinessAccountNotFoundError(NOT_REGISTERED_MESSAGE)
    return token, user


async def validate_business_email_phone(store: DocumentStore, email: str, phone: str) -> dict:
    """
    Check that ``phone`` belongs to the business account of ``email``.

    Returns:
        The full Businesses record, or the BusinessUsers record when the
        business has not been registered yet

    Raises:
        BusinessAccountNotFoundError: no BusinessUsers record for the email
        PhoneMismatchError: the stored phone differs from ``phone``
    """
    user = await business_db.get_business_user(store, email=email)
    if user is None:
        raise BusinessAccountNotFoundError(NOT_REGISTERED_MESSAGE)

    stored = normalize_phone(format_phone(user.get("phone", "")))
    given = normalize_phone(format_phone(normalize_phone(phone)))
    if stored != given:
        logger.info("Phone mismatch for %s", email)
        raise PhoneMismatchError()

    business = await business_db.get_business(store, email)
    return business or user
