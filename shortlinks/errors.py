class LinkError(Exception):
    """Base for every error the link engine surfaces to callers."""

    kind = "link_error"
    status_code = 400
    message = "Link error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidCode(LinkError):
    kind = "invalid_code"
    status_code = 422
    message = "Short code must be 3-50 characters of letters, digits or '-'"


class CodeTaken(LinkError):
    kind = "code_taken"
    status_code = 409
    message = "This short code is already taken"


class CodeExhausted(LinkError):
    kind = "code_exhausted"
    status_code = 503
    message = "Could not allocate a short code, please retry"


class LinkNotFound(LinkError):
    kind = "not_found"
    status_code = 404
    message = "Link does not exist"


class LinkUnavailable(LinkError):
    kind = "unavailable"
    status_code = 410
    message = "Link is unavailable"


class TransientError(LinkError):
    kind = "transient_error"
    status_code = 503
    message = "Storage temporarily unavailable, please retry"


class InvalidStatusTransition(LinkError):
    kind = "invalid_status_transition"
    status_code = 409
    message = "Deleted links cannot change status"


class NotOwner(LinkError):
    kind = "forbidden"
    status_code = 403
    message = "You do not own this link"


class InvalidUrl(LinkError):
    kind = "invalid_url"
    status_code = 422
    message = "Destination must be a non-empty URL of at most 2048 characters"
