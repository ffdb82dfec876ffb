"""
Error taxonomy for the vault.

Every error carries a stable machine-readable ``code`` and an HTTP
``status_code``; the exception handlers in ``passvault.main`` render them
into the ``{success: false, message, code}`` response envelope.
"""


class VaultError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(VaultError):
    """Bad input shape or length. User-correctable."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidImportData(ValidationError):
    code = "INVALID_IMPORT_DATA"


class EmptyImportData(ValidationError):
    code = "EMPTY_IMPORT_DATA"


class ImportLimitExceeded(ValidationError):
    code = "IMPORT_LIMIT_EXCEEDED"


class Unauthorized(VaultError):
    status_code = 401
    code = "UNAUTHORIZED"


class SessionExpired(Unauthorized):
    code = "SESSION_EXPIRED"


class InvalidCredentials(Unauthorized):
    code = "INVALID_CREDENTIALS"


class NotFound(VaultError):
    status_code = 404
    code = "NOT_FOUND"


class NotFoundInTrash(NotFound):
    code = "NOT_FOUND_IN_TRASH"


class UserExists(VaultError):
    status_code = 409
    code = "USER_EXISTS"


class StoreUnavailable(VaultError):
    """The key-value backend failed. Retryable by the caller."""

    status_code = 503
    code = "STORE_UNAVAILABLE"


class DataCorrupted(VaultError):
    status_code = 500
    code = "DATA_CORRUPTED"
