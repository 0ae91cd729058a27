"""
Transactions router for the ledger and the confirm/reject lifecycle.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Query, status

from app.dependencies.auth import get_current_user
from app.dependencies.services import get_services
from app.models.transaction import TransactionStatus, TransactionType
from app.models.user import User
from app.schemas.transaction import (
    BatchConfirmRequest,
    BatchRejectRequest,
    BatchResult,
    RejectRequest,
    TransactionCreate,
    TransactionHistory,
    TransactionResponse,
    TransactionUpdates,
)
from app.services.wiring import LedgerServices

router = APIRouter(prefix="/portfolios/{portfolio_id}/transactions", tags=["Transactions"])


@router.get(
    "",
    response_model=TransactionHistory,
    summary="Get transaction history",
)
async def list_transactions(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    status_filter: Optional[TransactionStatus] = Query(None, alias="status", description="Filter by status"),
    type_filter: Optional[TransactionType] = Query(None, alias="type", description="Filter by type"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    services: LedgerServices = Depends(get_services),
):
    """
    Get paginated transaction history, newest first.

    - **status**: Optional status filter (PENDING, CONFIRMED, EXECUTED, REJECTED)
    - **type**: Optional type filter
    - **page**: Page number (default: 1)
    - **page_size**: Items per page (default: 50, max: 100)

    Requires valid token as query parameter: `?token=xxx`
    """
    return await services.ledger.list_transactions(
        portfolio_id=portfolio_id,
        user_id=current_user.id,
        status=status_filter,
        tx_type=type_filter,
        page=page,
        page_size=page_size,
    )


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record manual transaction",
)
async def create_transaction(
    portfolio_id: str,
    body: TransactionCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Record a transaction that already happened.

    - **type**: CASH_CREDIT, CASH_DEBIT, BUY, SELL_WITHDRAWAL, DIVIDEND, ...
    - **ticker**: Required for trades and dividends
    - **price** / **quantity**: Required for trades; amount defaults to their product
    - **auto_cash_credit**: For BUY, first credit any missing cash

    Debits that would overdraw the portfolio are refused.
    """
    return await services.suggestions.record_manual_transaction(portfolio_id, current_user.id, body)


@router.post(
    "/confirm-batch",
    response_model=BatchResult,
    summary="Confirm several transactions",
)
async def confirm_batch(
    portfolio_id: str,
    body: BatchConfirmRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Confirm pending transactions one by one.

    Credits are confirmed before debits of the same day. Each id reports its
    own outcome; the batch fails only when every id failed.
    """
    return await services.suggestions.confirm_batch_transactions(
        body.transaction_ids, current_user.id, body.updates, portfolio_id
    )


@router.post(
    "/reject-batch",
    response_model=BatchResult,
    summary="Reject several transactions",
)
async def reject_batch(
    portfolio_id: str,
    body: BatchRejectRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    return await services.suggestions.reject_transactions_batch(
        body.transaction_ids, current_user.id, body.reason, portfolio_id
    )


@router.post(
    "/{transaction_id}/confirm",
    response_model=TransactionResponse,
    summary="Confirm transaction",
)
async def confirm_transaction(
    portfolio_id: str,
    transaction_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    body: Optional[TransactionUpdates] = Body(None),
    services: LedgerServices = Depends(get_services),
):
    """
    Confirm a pending transaction, optionally correcting amount, price or quantity.
    """
    return await services.suggestions.confirm_transaction(
        transaction_id, current_user.id, body, portfolio_id
    )


@router.post(
    "/{transaction_id}/reject",
    response_model=TransactionResponse,
    summary="Reject transaction",
)
async def reject_transaction(
    portfolio_id: str,
    transaction_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    body: Optional[RejectRequest] = Body(None),
    services: LedgerServices = Depends(get_services),
):
    reason = body.reason if body else None
    return await services.suggestions.reject_transaction(
        transaction_id, current_user.id, reason, portfolio_id
    )


@router.delete(
    "/{transaction_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete transaction",
)
async def delete_transaction(
    portfolio_id: str,
    transaction_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Delete a transaction.

    Confirmed suggested transactions are permanent, and removing a cash
    inflow that was already spent is refused.
    """
    await services.suggestions.delete_transaction(transaction_id, current_user.id, portfolio_id)
