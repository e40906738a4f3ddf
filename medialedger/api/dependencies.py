"""
FastAPI Dependencies - Authentication, authorization and service lookup.

NO DICTIONARIES - All dependencies return typed objects.
"""

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from structlog import get_logger

from medialedger.config import get_settings
from medialedger.exceptions import AuthenticationError, AuthorizationError
from medialedger.models.api import AccountRole, AccountStatus
from medialedger.models.domain import AccountData, Principal
from medialedger.services.container import Services

logger = get_logger(__name__)

# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    """Service container built at startup."""
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready",
        )
    return services


def decode_principal(token: str, secret: str, algorithm: str = "HS256") -> Principal:
    """
    Verify a bearer token and extract the caller's identity.

    Claims: sub (account id), email, optional role and name.

    Raises:
        AuthenticationError: token invalid, expired or missing claims
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise AuthenticationError("token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError(f"invalid token: {exc}") from exc

    sub = payload.get("sub")
    email = payload.get("email")
    if not isinstance(sub, str) or not sub:
        raise AuthenticationError("token missing sub claim")
    if not isinstance(email, str) or not email:
        raise AuthenticationError("token missing email claim")

    role = AccountRole.ADMIN if payload.get("role") == AccountRole.ADMIN.value else AccountRole.USER
    name = payload.get("name")
    return Principal(
        account_id=sub,
        email=email,
        role=role,
        display_name=name if isinstance(name, str) and name else None,
    )


async def get_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """
    Validate Authorization: Bearer {jwt}.

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    settings = get_settings()
    try:
        return decode_principal(
            credentials.credentials, settings.auth_jwt_secret, settings.auth_jwt_algorithm
        )
    except AuthenticationError as exc:
        logger.warning("jwt_auth_failed", error=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_current_account(
    principal: Principal = Depends(get_principal),
    services: Services = Depends(get_services),
) -> AccountData:
    """Account for the caller, created on first successful authentication."""
    return await services.directory.authenticate(principal)


async def require_active_account(
    account: AccountData = Depends(get_current_account),
) -> AccountData:
    """
    Reject suspended and deleted accounts before they reach the core.

    Raises:
        HTTPException(403): account is not active
    """
    if account.status == AccountStatus.SUSPENDED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account suspended: {account.status_reason or 'contact support'}",
        )
    if account.status == AccountStatus.DELETED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deleted",
        )
    return account


async def require_admin(
    account: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> AccountData:
    """
    Pass the caller through AdminGateway.

    Raises:
        HTTPException(403): caller is not authorized for admin operations
    """
    try:
        services.gateway.authorize(account)
    except AuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        ) from exc
    return account


def ensure_self_or_admin(actor: AccountData, account_id: str) -> None:
    """
    Raises:
        HTTPException(403): actor is neither account_id nor an admin
    """
    if actor.account_id != account_id and not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot access another account",
        )
