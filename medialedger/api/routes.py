"""
API Routes - FastAPI endpoints for balances, spending and media retention.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from medialedger.api.dependencies import (
    ensure_self_or_admin,
    get_services,
    require_active_account,
)
from medialedger.db.models import utc_now
from medialedger.exceptions import (
    AccountDeletedError,
    AccountNotFoundError,
    AccountSuspendedError,
    AssetNotFoundError,
    AuthorizationError,
    ConcurrencyError,
    ExtensionLimitReachedError,
    InsufficientCreditsError,
    InvalidAmountError,
    TransientStorageError,
)
from medialedger.models.api import (
    AssetListResponse,
    AssetRegisterRequest,
    AssetResponse,
    BalanceResponse,
    CreditMutationResponse,
    ExtendResponse,
    LedgerEntryResponse,
    LedgerHistoryResponse,
    SpendRequest,
)
from medialedger.models.domain import AccountData, AssetData, CreditDelta, LedgerEntryData
from medialedger.services.container import Services

router = APIRouter()


def entry_response(entry: LedgerEntryData) -> LedgerEntryResponse:
    """Convert domain ledger entry to API response."""
    return LedgerEntryResponse(
        entry_id=entry.entry_id,
        account_id=entry.account_id,
        actor_id=entry.actor_id,
        kind=entry.kind,
        currency=entry.currency,
        amount=entry.amount,
        balance_before=entry.balance_before,
        balance_after=entry.balance_after,
        reason=entry.reason,
        sequence=entry.sequence,
        status_from=entry.status_from,
        status_to=entry.status_to,
        created_at=entry.created_at,
    )


def mutation_response(entry: LedgerEntryData) -> CreditMutationResponse:
    """Convert a ledger mutation result to API response."""
    return CreditMutationResponse(
        account_id=entry.account_id,
        currency=entry.currency,
        balance=entry.balance_after,
        entry=entry_response(entry),
    )


def asset_response(asset: AssetData) -> AssetResponse:
    """Convert domain asset to API response."""
    return AssetResponse(
        asset_id=asset.asset_id,
        owner_account_id=asset.owner_account_id,
        content_type=asset.content_type,
        blob_key=asset.blob_key,
        created_at=asset.created_at,
        expires_at=asset.expires_at,
        extension_count=asset.extension_count,
        last_extended_at=asset.last_extended_at,
        expired=asset.is_expired(utc_now()),
    )


@router.get("/v1/accounts/{account_id}/balance", response_model=BalanceResponse)
async def get_balance(
    account_id: str,
    actor: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> BalanceResponse:
    """
    Current image and video balances.

    Auth: Bearer {jwt} for the account itself, or an admin.
    """
    ensure_self_or_admin(actor, account_id)
    try:
        balance = await services.ledger.get_balance(account_id)
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc

    return BalanceResponse(
        account_id=balance.account_id,
        image_credits=balance.image_credits,
        video_credits=balance.video_credits,
        unlimited=balance.unlimited,
    )


@router.post("/v1/accounts/{account_id}/credits", response_model=CreditMutationResponse)
async def spend_credits(
    account_id: str,
    request: SpendRequest,
    response: Response,
    actor: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> CreditMutationResponse:
    """
    Spend credits after a successful generation.

    Only the account itself may spend its credits.
    """
    if actor.account_id != account_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot spend another account's credits",
        )

    try:
        entry = await services.ledger.spend(
            account_id,
            CreditDelta(currency=request.currency, amount=request.amount, reason=request.reason),
        )
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

    except AccountSuspendedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Account suspended: {exc.reason}",
        ) from exc

    except AccountDeletedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deleted",
        ) from exc

    except ConcurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account busy, retry",
        ) from exc

    response.headers["X-Credit-Balance"] = str(entry.balance_after)
    return mutation_response(entry)


@router.get("/v1/accounts/{account_id}/ledger", response_model=LedgerHistoryResponse)
async def get_ledger(
    account_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    actor: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> LedgerHistoryResponse:
    """Audit history, newest first."""
    ensure_self_or_admin(actor, account_id)
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


@router.get("/v1/accounts/{account_id}/assets", response_model=AssetListResponse)
async def list_assets(
    account_id: str,
    actor: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> AssetListResponse:
    """Media assets owned by the account, newest first."""
    ensure_self_or_admin(actor, account_id)
    assets = await services.retention.list_assets(account_id)
    return AssetListResponse(
        account_id=account_id,
        assets=[asset_response(a) for a in assets],
    )


@router.post(
    "/v1/assets",
    response_model=AssetResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_asset(
    request: AssetRegisterRequest,
    actor: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> AssetResponse:
    """Record a generated asset for the caller. Expiry starts now."""
    try:
        asset = await services.retention.register(
            actor.account_id, request.content_type, request.blob_key
        )
    except AccountNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Account not found",
        ) from exc

    return asset_response(asset)


@router.post("/v1/assets/{asset_id}/extend", response_model=ExtendResponse)
async def extend_asset(
    asset_id: UUID,
    response: Response,
    actor: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> ExtendResponse:
    """
    Extend an asset's storage by one period.

    Each call consumes one extension. Admins are not limited.
    """
    try:
        result = await services.retention.extend(asset_id, actor)
    except AssetNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Asset not found",
        ) from exc

    except AuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the owner can extend this asset",
        ) from exc

    except ExtensionLimitReachedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Maximum extensions reached ({exc.extension_count}/{exc.max_extensions})",
            headers={"X-Extensions-Remaining": str(exc.remaining)},
        ) from exc

    except ConcurrencyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Asset busy, retry",
        ) from exc

    if result.remaining is not None:
        response.headers["X-Extensions-Remaining"] = str(result.remaining)
    return ExtendResponse(
        asset_id=result.asset_id,
        new_expires_at=result.new_expires_at,
        extension_count=result.extension_count,
        remaining=result.remaining,
    )


@router.delete("/v1/assets/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(
    asset_id: UUID,
    actor: AccountData = Depends(require_active_account),
    services: Services = Depends(get_services),
) -> None:
    """Purge an asset now. Blob first, then record."""
    try:
        await services.retention.delete_asset(asset_id, actor)
    except AssetNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Asset not found",
        ) from exc

    except AuthorizationError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the owner can delete this asset",
        ) from exc

    except (TransientStorageError, ConcurrencyError) as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage temporarily unavailable, retry",
        ) from exc
