"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""

from uuid import UUID

from medialedger.models.api import AccountStatus, Currency, StatusAction


class LedgerError(Exception):
    """Base exception for all ledger, lifecycle and retention errors."""

    pass


class AccountNotFoundError(LedgerError):
    """Raised when account doesn't exist."""

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AssetNotFoundError(LedgerError):
    """Raised when media asset doesn't exist (or was already purged)."""

    def __init__(self, asset_id: UUID) -> None:
        self.asset_id = asset_id
        super().__init__(f"Asset not found: {asset_id}")


class InvalidAmountError(LedgerError):
    """Raised when a credit amount violates the operation's sign rule."""

    def __init__(self, amount: int, rule: str) -> None:
        self.amount = amount
        self.rule = rule
        super().__init__(f"Invalid amount {amount}: must be {rule}")


class InsufficientCreditsError(LedgerError):
    """Raised when account has insufficient balance for a deduction."""

    def __init__(self, currency: Currency, balance: int, required: int) -> None:
        self.currency = currency
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient {currency.value} credits. Balance: {balance}, Required: {required}"
        )


class AccountSuspendedError(LedgerError):
    """Raised when a suspended account tries to spend."""

    def __init__(self, account_id: str, reason: str | None) -> None:
        self.account_id = account_id
        self.reason = reason
        super().__init__(f"Account {account_id} suspended: {reason or 'no reason given'}")


class AccountDeletedError(LedgerError):
    """Raised when a deleted account tries to spend."""

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        super().__init__(f"Account {account_id} is deleted")


class AdminAccountProtectedError(LedgerError):
    """Raised when a suspend/delete targets an admin account."""

    def __init__(self, account_id: str, action: StatusAction) -> None:
        self.account_id = account_id
        self.action = action
        super().__init__(f"Cannot {action.value} admin account {account_id}")


class SelfActionForbiddenError(LedgerError):
    """Raised when an actor tries to suspend or delete their own account."""

    def __init__(self, account_id: str, action: StatusAction) -> None:
        self.account_id = account_id
        self.action = action
        super().__init__(f"Account {account_id} cannot {action.value} itself")


class InvalidStateTransitionError(LedgerError):
    """Raised when a status transition is not allowed from the current state."""

    def __init__(
        self, account_id: str, current: AccountStatus, action: StatusAction
    ) -> None:
        self.account_id = account_id
        self.current = current
        self.action = action
        super().__init__(
            f"Cannot {action.value} account {account_id} in state {current.value}"
        )


class ExtensionLimitReachedError(LedgerError):
    """Raised when an asset has used all of its extensions."""

    def __init__(self, asset_id: UUID, extension_count: int, max_extensions: int) -> None:
        self.asset_id = asset_id
        self.extension_count = extension_count
        self.max_extensions = max_extensions
        self.remaining = 0
        super().__init__(
            f"Maximum extensions reached for asset {asset_id} "
            f"({extension_count}/{max_extensions})"
        )


class TransientStorageError(LedgerError):
    """Raised when the storage backend fails in a way that may succeed on retry."""

    def __init__(self, blob_key: str, message: str) -> None:
        self.blob_key = blob_key
        self.message = message
        super().__init__(f"Transient storage error for {blob_key}: {message}")


class ConcurrencyError(LedgerError):
    """Raised when concurrent modification persists after all retries."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Concurrent modification detected for {resource}")


class DataIntegrityError(LedgerError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")


class AuthenticationError(LedgerError):
    """Raised when authentication fails (missing or invalid token)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(LedgerError):
    """Raised when the caller lacks required permissions (Forbidden)."""

    def __init__(self, required_permission: str) -> None:
        self.required_permission = required_permission
        super().__init__(f"Authorization failed: missing permission {required_permission}")


class WriteVerificationError(LedgerError):
    """Raised when a write could not be completed or verified."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")
