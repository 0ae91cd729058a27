"""
Suggestions router for rebalancing, contribution and dividend proposals.
"""
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, status

from app.dependencies.auth import get_current_user
from app.dependencies.services import get_services
from app.models.user import User
from app.schemas.suggestion import (
    MaterializeRequest,
    MaterializeResponse,
    SuggestionKind,
    SuggestionsResponse,
    SuggestionStatus,
)
from app.schemas.transaction import BatchResult
from app.services.wiring import LedgerServices

router = APIRouter(prefix="/portfolios/{portfolio_id}/suggestions", tags=["Suggestions"])


@router.get(
    "/status",
    response_model=SuggestionStatus,
    summary="Suggestion status",
)
async def get_suggestion_status(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """Whether suggestions were generated recently and cash is waiting to be invested."""
    return await services.suggestions.get_suggestion_status(portfolio_id, current_user.id)


@router.get(
    "/{kind}",
    response_model=SuggestionsResponse,
    summary="List suggestions",
)
async def list_suggestions(
    portfolio_id: str,
    kind: SuggestionKind,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """
    Compute suggestions of one kind without persisting them.

    - **rebalancing**: sells of overweight and buys of underweight assets,
      also grouped into combined units
    - **contribution**: missed contributions and buys for available cash
    - **dividends**: dividend credits not yet in the ledger
    """
    return await services.suggestions.list_suggestions(portfolio_id, current_user.id, kind)


@router.post(
    "/materialize",
    response_model=MaterializeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Save suggestions as pending transactions",
)
async def materialize_suggestions(
    portfolio_id: str,
    body: MaterializeRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    """Persist suggestions as PENDING transactions; duplicates resolve to the existing row."""
    return await services.suggestions.create_pending_transactions(
        portfolio_id, current_user.id, body.suggestions
    )


@router.delete(
    "/pending",
    summary="Delete pending transactions",
)
async def delete_pending_transactions(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    services: LedgerServices = Depends(get_services),
):
    deleted = await services.suggestions.delete_pending_transactions(portfolio_id, current_user.id)
    return {"deleted": deleted}


@router.post(
    "/rebalancing/execute",
    response_model=BatchResult,
    summary="Execute rebalancing",
)
async def execute_rebalancing(
    portfolio_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    body: Optional[MaterializeRequest] = Body(None),
    services: LedgerServices = Depends(get_services),
):
    """
    Save and confirm rebalancing trades in one call, sells first.

    Without a body the current rebalancing suggestions are used.
    """
    suggestions = body.suggestions if body else None
    return await services.suggestions.execute_rebalancing(portfolio_id, current_user.id, suggestions)
