"""UdhyogUnity business onboarding service."""
