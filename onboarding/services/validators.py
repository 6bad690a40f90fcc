"""
Step validators — pure functions FormAggregate → {field: message}.

An empty mapping means the step may be left forward. Step 2 additionally
depends on the phone verification state, so it is composed from the pure
field check and a verification check.
"""

from __future__ import annotations
import re
from typing import Callable, Protocol

from onboarding.schemas import CATEGORY_OPTIONS, BusinessType, FormAggregate, PaymentMethod
from onboarding.services.phone import is_valid_phone

EMAIL_RE = re.compile(r"\S+@\S+\.\S+")

DESCRIPTION_MIN = 20
DESCRIPTION_MAX = 500
PHOTOS_MIN = 3
PHOTOS_MAX = 5

Errors = dict[str, str]
StepValidator = Callable[[FormAggregate], Errors]


class PhoneVerification(Protocol):
    def is_verified_for(self, phone: str) -> bool: ...


def validate_business_details(form: FormAggregate) -> Errors:
    errors: Errors = {}
    if not form.business_name.strip():
        errors["businessName"] = "Business name is required"
    if not isinstance(form.business_type, BusinessType):
        errors["businessType"] = "Please select a business type"

    if not form.description:
        errors["description"] = "Description is required"
    elif len(form.description) < DESCRIPTION_MIN:
        errors["description"] = f"Description must be at least {DESCRIPTION_MIN} characters"
    elif len(form.description) > DESCRIPTION_MAX:
        errors["description"] = f"Description cannot exceed {DESCRIPTION_MAX} characters"

    if not form.categories:
        errors["categories"] = "Please select at least one category"
    elif len(set(form.categories)) != len(form.categories) or not set(form.categories) <= set(CATEGORY_OPTIONS):
        errors["categories"] = "Please select categories from the list"
    if not form.logo:
        errors["logo"] = "Please upload a business logo"
    return errors


def validate_contact_fields(form: FormAggregate) -> Errors:
    errors: Errors = {}
    if not form.owner_name.strip():
        errors["ownerName"] = "Owner name is required"

    if not form.phone_number:
        errors["phoneNumber"] = "Phone number is required"
    elif not is_valid_phone(form.phone_number):
        errors["phoneNumber"] = "Please enter a valid 10-digit phone number"

    if not form.email:
        errors["email"] = "Email is required"
    elif not EMAIL_RE.search(form.email):
        errors["email"] = "Please enter a valid email address"

    if not form.address.strip():
        errors["address"] = "Business address is required"
    if not form.state:
        errors["state"] = "Please select a state"
    if not form.city:
        errors["city"] = "Please select a city"
    return errors


def contact_validator(verification: PhoneVerification) -> StepValidator:
    """Step 2: contact fields plus a verified phone for the entered number."""

    def validate(form: FormAggregate) -> Errors:
        errors = validate_contact_fields(form)
        if "phoneNumber" not in errors and not verification.is_verified_for(form.phone_number):
            errors["phoneNumber"] = "Please verify your phone number"
        return errors

    return validate


def validate_verification(form: FormAggregate) -> Errors:
    errors: Errors = {}
    if not form.government_id:
        errors["governmentId"] = "Government ID is required"
    if not form.verification_document:
        errors["verificationDocument"] = "At least one verification document is required"

    count = len(form.business_photos)
    if count < PHOTOS_MIN:
        errors["businessPhotos"] = f"Please upload at least {PHOTOS_MIN} business photos"
    elif count > PHOTOS_MAX:
        errors["businessPhotos"] = f"You can upload at most {PHOTOS_MAX} business photos"
    return errors


def validate_payment(form: FormAggregate) -> Errors:
    errors: Errors = {}
    methods = set(form.payment_methods)
    if not methods:
        errors["paymentMethods"] = "Please select at least one payment method"
    if PaymentMethod.UPI in methods and not form.upi_id.strip():
        errors["upiId"] = "UPI ID is required when UPI payment method is selected"
    if PaymentMethod.BANK in methods and not form.bank_details.strip():
        errors["bankDetails"] = "Bank details are required when Bank Transfer is selected"
    return errors


def validate_consent(form: FormAggregate) -> Errors:
    errors: Errors = {}
    if not form.terms_agreed:
        errors["termsAgreed"] = "You must accept the terms and conditions"
    if not form.details_confirmed:
        errors["detailsConfirmed"] = "You must confirm that all details are accurate"
    return errors


def build_step_validators(verification: PhoneVerification) -> dict[int, StepValidator]:
    """Forward validators for steps 1-4. Step 5 has none; it is the submit step."""
    return {
        1: validate_business_details,
        2: contact_validator(verification),
        3: validate_verification,
        4: validate_payment,
    }
