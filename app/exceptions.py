"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID


class EntitlementError(Exception):
    """Base exception for all entitlement service errors."""

    pass


class AccountNotFoundError(EntitlementError):
    """Raised when account doesn't exist."""

    def __init__(self, identifier: UUID | str) -> None:
        self.identifier = identifier
        super().__init__(f"Account not found: {identifier}")


class PersonaNotFoundError(EntitlementError):
    """Raised when a persona doesn't exist or belongs to another account."""

    def __init__(self, persona_id: UUID | str) -> None:
        self.persona_id = persona_id
        super().__init__(f"Persona not found: {persona_id}")


class InvalidRequestError(EntitlementError):
    """Raised when required fields are missing or malformed."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid request: {message}")


class QuotaExceededError(EntitlementError):
    """Raised when the monthly token allowance is used up."""

    def __init__(self, account_id: UUID, monthly_usage: int, monthly_credits: int) -> None:
        self.account_id = account_id
        self.monthly_usage = monthly_usage
        self.monthly_credits = monthly_credits
        super().__init__(
            f"Monthly token quota exceeded. Usage: {monthly_usage}, Allowance: {monthly_credits}"
        )


class SubscriptionStateError(EntitlementError):
    """Raised when a subscription action does not fit the account's plan state."""

    def __init__(self, account_id: UUID, message: str) -> None:
        self.account_id = account_id
        self.message = message
        super().__init__(message)


class WriteVerificationError(EntitlementError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DataIntegrityError(EntitlementError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")


class ConfigurationMissingError(EntitlementError):
    """Raised when a provider is called without its credentials configured."""

    def __init__(self, component: str) -> None:
        self.component = component
        super().__init__(f"{component} is not configured")


class PaymentProviderError(EntitlementError):
    """Raised when billing provider operation fails."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        description: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.description = description
        self.status_code = status_code
        super().__init__(f"Payment provider error: {message}")

    @property
    def is_already_cancelled(self) -> bool:
        """Provider rejected a cancel because the subscription is already cancelled."""
        return (
            self.code == "BAD_REQUEST_ERROR"
            and self.description is not None
            and "cancelled" in self.description.lower()
        )


class PaymentVerificationError(EntitlementError):
    """Raised when payment signature or provider status checks fail."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment verification failed: {message}")


class LLMProviderError(EntitlementError):
    """Raised when the LLM aggregation API call fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(f"LLM provider error: {message}")


class LLMTimeoutError(LLMProviderError):
    """Raised when the LLM call exceeds its timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"no response within {timeout_seconds:g}s")


class AuthenticationError(EntitlementError):
    """Raised when authentication fails (missing or invalid bearer token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")
