# healthpass/errors.py
"""
Error taxonomy. Every failure is local and non-fatal; the HTTP layer maps each
class to a status code in main.py.
"""


class HealthPassError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class StoreError(HealthPassError):
    """Any failed call to the database."""
    status_code = 503


class ConstraintViolation(HealthPassError):
    status_code = 409


class NotFound(HealthPassError):
    status_code = 404


class MalformedPayload(HealthPassError):
    """Scanned text is not a well-formed share payload."""
    status_code = 400


class ShareDenied(HealthPassError):
    status_code = 403

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SignatureMismatch(HealthPassError):
    status_code = 400


class Unauthorized(HealthPassError):
    status_code = 401


class Forbidden(HealthPassError):
    status_code = 403


class ScannerError(HealthPassError):
    """Camera could not be opened or stopped delivering frames."""
    status_code = 503
