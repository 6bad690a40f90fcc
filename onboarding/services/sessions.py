"""
Wizard session registry — one WizardController per registration in
progress, kept in process memory and addressed by an opaque id.

Shared collaborators (storage, identity provider, reference data, document
store) are built once; verification, geo and submission state are per
session.
"""

from __future__ import annotations
import logging
import uuid

from onboarding.config import settings
from onboarding.errors import SessionNotFoundError
from onboarding.services.document_store import DocumentStore, SqlDocumentStore
from onboarding.services.geo_resolver import GeoResolver
from onboarding.services.identity import FirebaseIdentityProvider, PhoneOTPProvider
from onboarding.services.otp import LocalOTPProvider
from onboarding.services.reference_data import ReferenceDataClient
from onboarding.services.storage import CloudinaryStorage
from onboarding.services.submission import SubmissionCoordinator
from onboarding.services.upload_pipeline import UploadPipeline
from onboarding.services.uploader import AssetUploader
from onboarding.services.verification import VerificationStateMachine
from onboarding.services.wizard import WizardController

logger = logging.getLogger(__name__)


def build_otp_provider(
    backend: str | None = None,
    identity: FirebaseIdentityProvider | None = None,
) -> PhoneOTPProvider:
    """Phone OTP provider for OTP_BACKEND; "firebase" reuses the identity client."""
    backend = (backend or settings.OTP_BACKEND).lower()
    if backend == "local":
        return LocalOTPProvider()
    if backend == "firebase":
        return identity or FirebaseIdentityProvider()
    raise ValueError(f"Unknown OTP backend: {backend}")


class WizardSessionRegistry:
    def __init__(
        self,
        store: DocumentStore | None = None,
        otp_provider: PhoneOTPProvider | None = None,
        identity: FirebaseIdentityProvider | None = None,
        reference: ReferenceDataClient | None = None,
        storage: CloudinaryStorage | None = None,
        cooldown: int | None = None,
        tick: float = 1.0,
        geo_options: dict | None = None,
    ):
        self.store = store or SqlDocumentStore()
        self.identity = identity or FirebaseIdentityProvider()
        self.otp_provider = otp_provider or build_otp_provider(identity=self.identity)
        self.reference = reference or ReferenceDataClient()
        self.storage = storage or CloudinaryStorage()
        self.pipeline = UploadPipeline(AssetUploader(self.storage))
        self.cooldown = cooldown
        self.tick = tick
        self.geo_options = geo_options or {}
        self._sessions: dict[str, WizardController] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> tuple[str, WizardController]:
        session_id = uuid.uuid4().hex
        controller = WizardController(
            verification=VerificationStateMachine(
                self.otp_provider, cooldown=self.cooldown, tick=self.tick,
            ),
            geo=GeoResolver(self.reference, **self.geo_options),
            coordinator=SubmissionCoordinator(self.pipeline, self.store),
        )
        self._sessions[session_id] = controller
        logger.info("Wizard session started: %s", session_id)
        return session_id, controller

    def get(self, session_id: str) -> WizardController:
        """
        Raises:
            SessionNotFoundError: if the id is unknown or already discarded
        """
        controller = self._sessions.get(session_id)
        if controller is None:
            raise SessionNotFoundError(session_id)
        return controller

    def discard(self, session_id: str) -> None:
        """Tear the session down (countdown and pending lookups cancelled) and forget it."""
        controller = self._sessions.pop(session_id, None)
        if controller is None:
            raise SessionNotFoundError(session_id)
        controller.close()
        logger.info("Wizard session closed: %s", session_id)

    async def close(self) -> None:
        for session_id in list(self._sessions):
            self.discard(session_id)
        await self.storage.close()
        await self.reference.close()
        await self.identity.close()
        if self.otp_provider is not self.identity and hasattr(self.otp_provider, "close"):
            await self.otp_provider.close()
