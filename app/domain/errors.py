# app/domain/errors.py


class CartError(Exception):
    """Base class for errors raised by the cart core."""


class ValidationError(CartError, ValueError):
    """Malformed required input. Always surfaced to the caller."""


class NotFoundOrForbidden(CartError, LookupError):
    """A read, update or delete matched zero rows."""


class ConcurrencyConflict(CartError, RuntimeError):
    """A conditional update lost against a concurrent writer."""


class TransientIOError(CartError, RuntimeError):
    """Storage failure on the primary path. No retry at this layer."""


class RemoteSyncError(Exception):
    """Failure talking to the commerce provider.

    Internal to the provider mirror: logged and contained, never propagated
    to callers of a cart operation.
    """

    def __init__(self, message: str, code: str | None = None, details=None):
        super().__init__(message)
        self.code = code
        self.details = details
