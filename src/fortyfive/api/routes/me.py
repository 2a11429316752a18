"""Current-user profile and ledger endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from fortyfive.api.dependencies import get_current_user_id, get_uow_factory
from fortyfive.models.transaction import TransactionType
from fortyfive.services.exceptions import UserNotFound

router = APIRouter(prefix="/api/v1/me", tags=["me"])

DEFAULT_TRANSACTIONS_LIMIT = 10
MAX_TRANSACTIONS_LIMIT = 100


class UserProfileResponse(BaseModel):
    """Caller's profile with current credit balance."""

    id: int
    nickname: str | None = None
    avatar_url: str | None = None
    credits: int = Field(..., description="Current credit balance")
    created_at: datetime


class TransactionResponse(BaseModel):
    """One ledger entry."""

    id: int
    type: TransactionType
    amount: int = Field(..., description="Signed credit delta (negative for generations)")
    description: str | None = None
    external_payment_id: str | None = None
    related_template_id: int | None = None
    created_at: datetime


class TransactionListResponse(BaseModel):
    """Paginated ledger."""

    transactions: list[TransactionResponse]
    total: int
    limit: int
    offset: int


@router.get("", response_model=UserProfileResponse)
async def get_profile(
    user_id: int = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> UserProfileResponse:
    """Return the caller's profile.

    Raises:
        404: No user with the caller's id
    """
    async with await uow_factory() as uow:
        user = await uow.users.get_by_id(user_id)
    if user is None:
        raise UserNotFound(user_id)

    return UserProfileResponse(
        id=user.id,  # type: ignore[arg-type]
        nickname=user.nickname,
        avatar_url=user.avatar_url,
        credits=user.credits,
        created_at=user.created_at,
    )


@router.get("/transactions", response_model=TransactionListResponse)
async def list_transactions(
    limit: int = Query(DEFAULT_TRANSACTIONS_LIMIT, description="Clamped to 1..100"),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> TransactionListResponse:
    """Return the caller's ledger, newest first."""
    if limit < 1 or limit > MAX_TRANSACTIONS_LIMIT:
        limit = DEFAULT_TRANSACTIONS_LIMIT if limit < 1 else MAX_TRANSACTIONS_LIMIT

    async with await uow_factory() as uow:
        transactions = await uow.transactions.list_by_user(user_id, limit=limit, offset=offset)
        total = await uow.transactions.count_by_user(user_id)

    return TransactionListResponse(
        transactions=[
            TransactionResponse(
                id=t.id,  # type: ignore[arg-type]
                type=t.type,
                amount=t.amount,
                description=t.description,
                external_payment_id=t.external_payment_id,
                related_template_id=t.related_template_id,
                created_at=t.created_at,
            )
            for t in transactions
        ],
        total=total,
        limit=limit,
        offset=offset,
    )
