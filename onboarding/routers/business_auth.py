"""Business account sign-up / sign-in endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from onboarding.routers.deps import get_registry
from onboarding.schemas.wizard import BusinessAccount, BusinessSignIn, BusinessSignUp, EmailPhoneCheck
from onboarding.services import business_auth, business_db
from onboarding.services.sessions import WizardSessionRegistry

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/signup", response_model=BusinessAccount, status_code=201)
async def sign_up(data: BusinessSignUp, registry: WizardSessionRegistry = Depends(get_registry)):
    token, user = await business_auth.business_sign_up(
        registry.identity,
        registry.store,
        data.email,
        data.password,
        {
            "businessName": data.business_name,
            "contactPerson": data.contact_person,
            "phone": data.phone,
            "businessType": data.business_type,
        },
    )
    return BusinessAccount(uid=token.uid, id_token=token.id_token, user=user)


@router.post("/signin", response_model=BusinessAccount)
async def sign_in(data: BusinessSignIn, registry: WizardSessionRegistry = Depends(get_registry)):
    token, user = await business_auth.business_sign_in(
        registry.identity, registry.store, data.email, data.password,
    )
    return BusinessAccount(uid=token.uid, id_token=token.id_token, user=user)


@router.post("/validate-phone", response_model=BusinessAccount)
async def validate_email_phone(data: EmailPhoneCheck, registry: WizardSessionRegistry = Depends(get_registry)):
    """Check that a mobile number belongs to the business account of an email."""
    record = await business_auth.validate_business_email_phone(registry.store, data.email, data.phone)
    return BusinessAccount(user=record)


@router.get("/users", response_model=BusinessAccount)
async def get_business_user(
    email: str | None = None,
    phone: str | None = None,
    registry: WizardSessionRegistry = Depends(get_registry),
):
    if not email and not phone:
        raise HTTPException(status_code=400, detail="email or phone is required")
    user = await business_db.get_business_user(registry.store, email=email, phone=phone)
    if user is None:
        raise HTTPException(status_code=404, detail="Business user not found")
    return BusinessAccount(user=user)
