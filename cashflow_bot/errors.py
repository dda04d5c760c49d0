"""
Error taxonomy for the Cash Flow Bot.

Three families, each with a fixed handling rule in the conversation engine:

- ValidationError: bad user input. Re-prompt the same step.
- AuthorizationError: identity not in the directory. Fixed message, no state change.
- ExternalServiceError: a collaborator (directory, ledger, receipt storage) failed.
  Generic failure message, session kept.
"""


GENERIC_FAILURE_MESSAGE = "❌ Произошла ошибка. Попробуйте снова."


class CashflowError(Exception):
    """Base exception for the package."""
    pass


class ValidationError(CashflowError):
    """
    User input that cannot be accepted at the current step.

    The message is shown to the user as is.
    """

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.message = message
        self.field = field


class AuthorizationError(CashflowError):
    """Identity is not listed in the user directory."""

    def __init__(self, identity: int):
        super().__init__(f"🚫 У вас нет доступа. Ваш ID: {identity}")
        self.identity = identity

    @property
    def message(self) -> str:
        return str(self)


class ExternalServiceError(CashflowError):
    """A directory, ledger or receipt storage call failed."""

    service = "external"


class DirectoryError(ExternalServiceError):
    """Reading users or reference lists failed."""

    service = "directory"


class LedgerWriteError(ExternalServiceError):
    """
    Writing to the ledger failed.

    Callers must treat the row as not committed.
    """

    service = "ledger"


class AttachmentError(ExternalServiceError):
    """Receipt upload failed or the payload was rejected."""

    service = "attachments"
