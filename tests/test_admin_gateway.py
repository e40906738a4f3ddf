"""
Tests for AdminGateway.
"""

import pytest

from medialedger.exceptions import AuthorizationError
from medialedger.models.api import AccountRole
from medialedger.services.admin_gateway import AdminGateway


async def test_admin_passes(admin_account):
    AdminGateway().authorize(admin_account)


async def test_user_rejected(user_account):
    with pytest.raises(AuthorizationError) as exc_info:
        AdminGateway().authorize(user_account)
    assert exc_info.value.required_permission == "admin"


async def test_superadmin_email_restricts_admins(make_account):
    boss = await make_account("boss", role=AccountRole.ADMIN, email="boss@example.com")
    deputy = await make_account("deputy", role=AccountRole.ADMIN, email="deputy@example.com")
    gateway = AdminGateway(superadmin_email="BOSS@example.com")

    gateway.authorize(boss)
    with pytest.raises(AuthorizationError) as exc_info:
        gateway.authorize(deputy)
    assert exc_info.value.required_permission == "superadmin"
