"""onboarding - Identity onboarding flow engine (signup, legacy migration, direct login)."""

__version__ = "0.1.0"
