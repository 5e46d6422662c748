"""Exceptions raised by the storefront pricing and ordering core."""

from typing import Optional


class StorefrontError(Exception):
    """Base class for storefront errors."""

    pass


class DataServiceError(StorefrontError):
    """A request to the remote data service failed."""

    def __init__(
        self,
        table: str,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict] = None,
    ):
        self.table = table
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(f"{table}: {message}")


class DataServiceUnavailable(DataServiceError):
    """The data service could not be reached."""

    pass


class UniqueViolationError(DataServiceError):
    """The data service rejected a write because of a unique constraint."""

    pass


class CurrencyBasisError(TypeError):
    """Native and display amounts (or two currencies) were mixed."""

    pass


class TrackingCodeExhaustedError(StorefrontError):
    """No unused tracking code was found within the retry budget."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Could not allocate tracking code after {attempts} attempts"
        )


class CheckoutError(StorefrontError):
    """Checkout failed in a way the customer can retry."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
