"""
Admin Gateway - authorization boundary in front of admin mutations.

Holds no state of its own. Every admin route calls authorize() before any
ledger or lifecycle code runs.
"""

from structlog import get_logger

from medialedger.exceptions import AuthorizationError
from medialedger.models.domain import AccountData

logger = get_logger(__name__)


class AdminGateway:
    """Checks that an actor may perform admin operations."""

    def __init__(self, superadmin_email: str = "") -> None:
        self.superadmin_email = superadmin_email.strip().lower()

    def authorize(self, actor: AccountData) -> None:
        """
        Raises:
            AuthorizationError: actor is not an admin, or not the configured superadmin
        """
        if not actor.is_admin:
            logger.warning("admin_access_denied", account_id=actor.account_id, reason="not_admin")
            raise AuthorizationError("admin")
        if self.superadmin_email and actor.email.lower() != self.superadmin_email:
            logger.warning(
                "admin_access_denied", account_id=actor.account_id, reason="not_superadmin"
            )
            raise AuthorizationError("superadmin")
