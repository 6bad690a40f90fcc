from onboarding.models.document import Document

__all__ = ["Document"]
