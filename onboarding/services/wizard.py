"""
Registration Wizard — five-step state machine over one FormAggregate.

Steps:
  1. Business details → 2. Contact & location (phone OTP, geo lookup)
  → 3. Verification documents → 4. Payment setup → 5. Review & submit

Forward moves are gated by the current step's validator; backward moves
are always allowed and keep everything entered on later steps. Each step
may only write its own fields.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from onboarding.errors import ForeignFieldsError, WizardError
from onboarding.schemas import FormAggregate
from onboarding.services.geo_resolver import GeoResolution, GeoResolver
from onboarding.services.phone import clean_phone_input
from onboarding.services.submission import MEDIA_FIELDS, SubmissionCoordinator, SubmissionResult
from onboarding.services.validators import build_step_validators, validate_consent
from onboarding.services.verification import VerificationSession, VerificationStateMachine

logger = logging.getLogger(__name__)

FIRST_STEP = 1
LAST_STEP = 5
CONTACT_STEP = 2

STEP_FIELDS: dict[int, set[str]] = {
    1: {
        "business_name", "business_type", "description", "categories",
        "operating_since", "logo", "cover_image",
    },
    2: {
        "owner_name", "phone_number", "email", "address", "service_area",
        "state", "state_name", "city", "city_name", "location",
    },
    3: {"government_id", "verification_document", "business_photos", "intro_video"},
    4: {"payment_methods", "upi_id", "bank_details", "use_managed_payment"},
    5: {"terms_agreed", "details_confirmed"},
}


@dataclass
class StepOutcome:
    step: int
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def validated(self) -> bool:
        return not self.errors


class WizardController:
    def __init__(
        self,
        verification: VerificationStateMachine,
        geo: GeoResolver,
        coordinator: SubmissionCoordinator,
        aggregate: FormAggregate | None = None,
    ):
        self.verification = verification
        self.geo = geo
        self.coordinator = coordinator
        self.aggregate = aggregate or FormAggregate()
        self.current_step = FIRST_STEP
        self.step_errors: dict[int, dict[str, str]] = {}
        self.validators = build_step_validators(verification)
        self.finished = False

    # ── Data ───────────────────────────────────────────────

    def update(self, patch: Mapping[str, Any]) -> FormAggregate:
        """
        Merge field edits for the current step into the aggregate.
        Phone input is reduced to its 10 national digits.

        Raises:
            ForeignFieldsError: if the patch touches another step's fields
            ValueError: if the patch names an unknown field
        """
        self._ensure_open()
        names = {}
        for key in patch:
            name = FormAggregate.field_name(key)
            if name is None:
                raise ValueError(f"Unknown form fields: {key}")
            names[key] = name

        foreign = [key for key, name in names.items() if name not in STEP_FIELDS[self.current_step]]
        if foreign:
            raise ForeignFieldsError(self.current_step, foreign)

        patch = {
            key: clean_phone_input(value) if names[key] == "phone_number" and isinstance(value, str) else value
            for key, value in patch.items()
        }
        self.aggregate = self.aggregate.merge(patch)
        return self.aggregate

    def validate_step(self, step: int | None = None) -> StepOutcome:
        step = step or self.current_step
        validator = self.validators.get(step)
        errors = validator(self.aggregate) if validator else {}
        if errors:
            self.step_errors[step] = errors
        else:
            self.step_errors.pop(step, None)
        return StepOutcome(step=step, errors=errors)

    def submit_step(self, step_data: Mapping[str, Any]) -> StepOutcome:
        """Merge the step's data, then validate the current step."""
        self.update(step_data)
        return self.validate_step()

    # ── Navigation ─────────────────────────────────────────

    def advance(self) -> StepOutcome:
        """Move forward if the current step validates. Never goes past step 5."""
        self._ensure_open()
        outcome = self.validate_step()
        if not outcome.validated:
            logger.info("Step %d blocked: %s", self.current_step, ", ".join(outcome.errors))
            return outcome

        if self.current_step == CONTACT_STEP:
            self.verification.teardown()
        self.current_step = min(self.current_step + 1, LAST_STEP)
        return outcome

    def retreat(self) -> int:
        """Move back one step without validation. Never goes before step 1."""
        self._ensure_open()
        if self.current_step == CONTACT_STEP:
            self.verification.teardown()
        self.current_step = max(self.current_step - 1, FIRST_STEP)
        return self.current_step

    # ── Contact step helpers ───────────────────────────────

    def _require_contact_step(self) -> None:
        self._ensure_open()
        if self.current_step != CONTACT_STEP:
            raise WizardError("Phone and location can only be changed on the contact step")

    async def send_otp(self, challenge_token: str | None = None) -> VerificationSession:
        self._require_contact_step()
        return await self.verification.send_otp(self.aggregate.phone_number, challenge_token)

    async def resend_otp(self, challenge_token: str | None = None) -> bool:
        self._require_contact_step()
        return await self.verification.resend_otp(challenge_token)

    async def verify_otp(self, code: str) -> VerificationSession:
        self._require_contact_step()
        return await self.verification.verify_otp(code)

    def _apply(self, resolution: GeoResolution | None) -> GeoResolution | None:
        if resolution is not None and resolution.patch:
            self.aggregate = self.aggregate.merge(resolution.patch)
        return resolution

    async def resolve_address(self, text: str) -> GeoResolution | None:
        """Store the typed address, then apply the debounced geo resolution."""
        self._require_contact_step()
        self.aggregate = self.aggregate.merge({"address": text})
        return self._apply(await self.geo.resolve_from_address(text))

    async def resolve_coordinates(self, lat: float, lng: float) -> GeoResolution:
        self._require_contact_step()
        return self._apply(await self.geo.resolve_from_coordinates(lat, lng))

    async def select_state(self, code: str, name: str | None = None) -> FormAggregate:
        self._require_contact_step()
        self.aggregate = self.aggregate.merge(await self.geo.select_state(code, name))
        return self.aggregate

    def select_city(self, city_id: str, name: str | None = None) -> FormAggregate:
        self._require_contact_step()
        self.aggregate = self.aggregate.merge(self.geo.select_city(city_id, name))
        return self.aggregate

    # ── Submission ─────────────────────────────────────────

    async def submit(self) -> SubmissionResult | StepOutcome:
        """
        Run the final submission from step 5.

        Returns:
            StepOutcome with consent errors if terms are not accepted,
            otherwise the SubmissionResult
        """
        self._ensure_open()
        if self.current_step != LAST_STEP:
            raise WizardError("Registration can only be submitted from the final step")

        errors = validate_consent(self.aggregate)
        if errors:
            self.step_errors[LAST_STEP] = errors
            return StepOutcome(step=LAST_STEP, errors=errors)
        self.step_errors.pop(LAST_STEP, None)

        result = await self.coordinator.submit(self.aggregate)
        if result.ok:
            self.finished = True
            logger.info("Registration complete: business_id=%s", result.business_id)
        return result

    def _ensure_open(self) -> None:
        if self.finished:
            raise WizardError("Registration already submitted")

    def close(self) -> None:
        self.verification.teardown()
        self.geo.close()

    def snapshot(self) -> dict:
        return {
            "current_step": self.current_step,
            "finished": self.finished,
            "data": self.aggregate.model_dump(
                mode="json", by_alias=True, exclude=MEDIA_FIELDS,
            ),
            "media": _media_summary(self.aggregate),
            "step_errors": {str(k): v for k, v in self.step_errors.items()},
            "verification": self.verification.snapshot(),
            "submission_status": self.coordinator.status.value,
        }


def _media_summary(aggregate: FormAggregate) -> dict:
    """Which media fields are set and whether they are already uploaded."""

    def describe(value: Any) -> str | None:
        if value is None:
            return None
        if isinstance(value, str):
            return "local" if value.startswith("data:") else "uploaded"
        return "uploaded" if getattr(value, "url", None) else "local"

    return {
        "logo": describe(aggregate.logo),
        "coverImage": describe(aggregate.cover_image),
        "governmentId": describe(aggregate.government_id),
        "verificationDocument": describe(aggregate.verification_document),
        "introVideo": describe(aggregate.intro_video),
        "businessPhotos": [describe(p) for p in aggregate.business_photos],
    }
