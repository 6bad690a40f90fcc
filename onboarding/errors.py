"""Onboarding error taxonomy with user-facing messages."""

from __future__ import annotations


class OnboardingError(Exception):
    """Base exception for all onboarding errors."""

    def __init__(self, message: str, suggestion: str | None = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(message)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\nSuggestion: {self.suggestion}"
        return self.message


# ── Phone verification ─────────────────────────────────────

class VerificationError(OnboardingError):
    """Phone verification error."""

    pass


class InvalidPhoneError(VerificationError):
    def __init__(self, phone: str | None = None) -> None:
        super().__init__("Please enter a valid 10-digit phone number")
        self.phone = phone


class NoSessionError(VerificationError):
    def __init__(self) -> None:
        super().__init__(
            "No OTP request found. Please request an OTP first.",
        )


class InvalidCodeLengthError(VerificationError):
    def __init__(self) -> None:
        super().__init__("Please enter a valid 6-digit OTP")


class InvalidOTPError(VerificationError):
    def __init__(self) -> None:
        super().__init__("Invalid OTP. Please try again.")


# ── Identity provider ──────────────────────────────────────

class IdentityError(OnboardingError):
    """Identity provider error."""

    pass


class InvalidCredentialsError(IdentityError):
    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class EmailInUseError(IdentityError):
    def __init__(self, email: str) -> None:
        super().__init__(
            f"An account already exists for {email}",
            "Sign in instead of registering again",
        )


class QuotaExceededError(IdentityError):
    def __init__(self) -> None:
        super().__init__(
            "Too many OTP requests",
            "Wait a few minutes before trying again",
        )


class BusinessAccountNotFoundError(IdentityError):
    pass


class PhoneMismatchError(IdentityError):
    def __init__(self) -> None:
        super().__init__("Mobile number does not match the email account")


# ── Storage / persistence ──────────────────────────────────

class UploadFailedError(OnboardingError):
    def __init__(self, name: str, reason: str = "") -> None:
        message = f"Upload failed for '{name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.name = name


class UnsupportedAssetError(UploadFailedError):
    def __init__(self, name: str) -> None:
        super().__init__(name, "unsupported asset representation")


class DocumentStoreError(OnboardingError):
    """Document store error."""

    pass


class NotFoundError(DocumentStoreError):
    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"Document '{collection}/{key}' not found")
        self.collection = collection
        self.key = key


class WriteConflictError(DocumentStoreError):
    def __init__(self, collection: str, key: str) -> None:
        super().__init__(
            f"Write conflict on '{collection}/{key}'",
            "Retry the submission",
        )


# ── Wizard ─────────────────────────────────────────────────

class WizardError(OnboardingError):
    """Wizard navigation/merge error."""

    pass


class ForeignFieldsError(WizardError):
    def __init__(self, step: int, fields: list[str]) -> None:
        super().__init__(
            f"Step {step} cannot modify fields: {', '.join(sorted(fields))}",
        )
        self.step = step
        self.fields = fields


class SessionNotFoundError(WizardError):
    def __init__(self, session_id: str) -> None:
        super().__init__(
            f"Onboarding session '{session_id}' not found",
            "Start a new registration",
        )
