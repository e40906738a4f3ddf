"""
Admin API routes - credits, account status, dashboard and retention control.

Every route depends on require_admin, which passes the caller through
AdminGateway before any ledger or lifecycle code runs.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from structlog import get_logger

from medialedger.api.dependencies import get_services, require_admin
from medialedger.api.routes import entry_response, mutation_response
from medialedger.exceptions import (
    AccountNotFoundError,
    AdminAccountProtectedError,
    ConcurrencyError,
    InsufficientCreditsError,
    InvalidAmountError,
    InvalidStateTransitionError,
    SelfActionForbiddenError,
)
from medialedger.models.api import (
    AccountListResponse,
    AccountResponse,
    AccountStatus,
    AdminCreditRequest,
    AdminSetCreditsRequest,
    CreditAction,
    CreditMutationResponse,
    LedgerHistoryResponse,
    StatsResponse,
    StatusChangeRequest,
    SweepResponse,
    SweepRunResponse,
)
from medialedger.models.domain import AccountData, CreditDelta
from medialedger.services.container import Services

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin"])


def account_response(account: AccountData) -> AccountResponse:
    """Convert domain account to API response."""
    return AccountResponse(
        account_id=account.account_id,
        email=account.email,
        display_name=account.display_name,
        role=account.role,
        image_credits=account.image_credits,
        video_credits=account.video_credits,
        total_granted=account.total_granted,
        total_used=account.total_used,
        status=account.status,
        status_reason=account.status_reason,
        status_actor_id=account.status_actor_id,
        status_changed_at=account.status_changed_at,
        created_at=account.created_at,
        last_login_at=account.last_login_at,
    )


# ============================================================================
# Accounts
# ============================================================================


@router.get("/accounts", response_model=AccountListResponse)
async def list_accounts(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    status_filter: AccountStatus | None = Query(None, alias="status"),
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> AccountListResponse:
    """List accounts with pagination, optionally filtered by status."""
    accounts, total = await services.directory.list_accounts(
        page=page, page_size=page_size, status=status_filter
    )
    total_pages = (total + page_size - 1) // page_size
    return AccountListResponse(
        accounts=[account_response(a) for a in accounts],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: str,
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> AccountResponse:
    """Account detail."""
    try:
        account = await services.directory.get_account(account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc
    return account_response(account)


@router.get("/accounts/{account_id}/ledger", response_model=LedgerHistoryResponse)
async def get_account_ledger(
    account_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> LedgerHistoryResponse:
    """Audit history for any account, newest first."""
    try:
        entries = await services.ledger.history(account_id, limit=limit, offset=offset)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc

    return LedgerHistoryResponse(
        account_id=account_id,
        entries=[entry_response(e) for e in entries],
        limit=limit,
        offset=offset,
    )


@router.post("/accounts/{account_id}/credits", response_model=CreditMutationResponse)
async def adjust_credits(
    account_id: str,
    request: AdminCreditRequest,
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> CreditMutationResponse:
    """Grant or deduct credits."""
    delta = CreditDelta(currency=request.currency, amount=request.amount, reason=request.reason)
    try:
        if request.action == CreditAction.GRANT:
            entry = await services.ledger.grant(account_id, delta, admin.account_id)
        else:
            entry = await services.ledger.deduct(account_id, delta, admin.account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc

    except InvalidAmountError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    except InsufficientCreditsError as exc:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=f"Insufficient {exc.currency.value} credits. "
            f"Balance: {exc.balance}, Required: {exc.required}",
            headers={"X-Credit-Balance": str(exc.balance)},
        ) from exc

    except ConcurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account busy, retry",
        ) from exc

    return mutation_response(entry)


@router.put("/accounts/{account_id}/credits", response_model=CreditMutationResponse)
async def set_credits(
    account_id: str,
    request: AdminSetCreditsRequest,
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> CreditMutationResponse:
    """Set one balance to an exact value."""
    delta = CreditDelta(currency=request.currency, amount=request.amount, reason=request.reason)
    try:
        entry = await services.ledger.set_exact(account_id, delta, admin.account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc

    except InvalidAmountError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    except ConcurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account busy, retry",
        ) from exc

    return mutation_response(entry)


@router.put("/accounts/{account_id}/status", response_model=AccountResponse)
async def change_status(
    account_id: str,
    request: StatusChangeRequest,
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> AccountResponse:
    """Suspend, unsuspend, delete or reactivate an account."""
    try:
        account = await services.lifecycle.transition(
            account_id, request.action, request.reason, admin.account_id
        )
    except SelfActionForbiddenError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Cannot {exc.action.value} your own account",
        ) from exc

    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc

    except AdminAccountProtectedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Cannot {exc.action.value} admin accounts",
        ) from exc

    except InvalidStateTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot {exc.action.value} an account that is {exc.current.value}",
        ) from exc

    except ConcurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account busy, retry",
        ) from exc

    return account_response(account)


# ============================================================================
# Dashboard
# ============================================================================


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> StatsResponse:
    """Credits in circulation, account status counts and asset counts."""
    stats = await services.directory.stats()
    return StatsResponse(
        total_accounts=stats.total_accounts,
        active_accounts=stats.active_accounts,
        suspended_accounts=stats.suspended_accounts,
        deleted_accounts=stats.deleted_accounts,
        accounts_without_credits=stats.accounts_without_credits,
        image_credits_in_circulation=stats.image_credits_in_circulation,
        video_credits_in_circulation=stats.video_credits_in_circulation,
        total_assets=stats.total_assets,
        expired_assets=stats.expired_assets,
    )


# ============================================================================
# Retention
# ============================================================================


@router.post("/retention/sweep", response_model=SweepResponse)
async def trigger_sweep(
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> SweepResponse:
    """Run the retention sweep now."""
    logger.info("manual_sweep_requested", admin_id=admin.account_id)
    result = await services.retention.sweep()
    return SweepResponse(
        run_id=result.run_id,
        scanned_count=result.scanned_count,
        deleted_count=result.deleted_count,
        error_count=result.error_count,
    )


@router.get("/retention/sweeps", response_model=list[SweepRunResponse])
async def list_sweeps(
    limit: int = Query(20, ge=1, le=100),
    admin: AccountData = Depends(require_admin),
    services: Services = Depends(get_services),
) -> list[SweepRunResponse]:
    """Recent sweep runs, newest first."""
    runs = await services.retention.list_sweep_runs(limit=limit)
    return [
        SweepRunResponse(
            run_id=r.run_id,
            started_at=r.started_at,
            finished_at=r.finished_at,
            scanned_count=r.scanned_count,
            deleted_count=r.deleted_count,
            error_count=r.error_count,
            status=r.status,
            error=r.error,
        )
        for r in runs
    ]
