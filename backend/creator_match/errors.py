class MarketplaceError(Exception):
    """Base for failures the core reports back to its caller."""

    status_code = 400
    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(MarketplaceError):
    """Malformed or out-of-range input."""

    code = "validation_error"


class PreconditionError(MarketplaceError):
    """The operation is not allowed in the current state (no profile, request closed, ...)."""

    code = "precondition_failed"


class ConflictError(MarketplaceError):
    status_code = 409
    code = "conflict"


class NotFoundError(MarketplaceError):
    status_code = 404
    code = "not_found"
