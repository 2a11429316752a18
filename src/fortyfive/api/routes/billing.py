"""Credit purchase endpoint (development-mode mock payments).

No payment provider is contacted: the purchase is assumed paid and the
credits are granted immediately together with a purchase ledger entry.
"""

import time
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, model_validator

from fortyfive.api.dependencies import get_current_user_id, get_uow_factory
from fortyfive.services import credits

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/billing", tags=["billing"])

# WeChat Pay amounts are in yuan
CREDITS_PER_YUAN = 10

APPLE_PRODUCT_CREDITS = {
    "com.45ai.credits.50": 50,
    "com.45ai.credits.120": 120,
    "com.45ai.credits.300": 300,
    "com.45ai.credits.600": 600,
}
DEFAULT_APPLE_CREDITS = 100


class PurchaseRequest(BaseModel):
    """Request model for a credit purchase."""

    payment_method: Literal["wechat", "apple"] = Field(..., description="Payment channel")
    amount: int | None = Field(None, gt=0, description="Amount in yuan (wechat only)")
    product_id: str | None = Field(None, description="App Store product id (apple only)")

    @model_validator(mode="after")
    def check_method_fields(self) -> "PurchaseRequest":
        if self.payment_method == "wechat" and self.amount is None:
            raise ValueError("amount is required for wechat purchases")
        if self.payment_method == "apple" and not self.product_id:
            raise ValueError("product_id is required for apple purchases")
        return self


class PurchaseResponse(BaseModel):
    """Response model for a completed purchase."""

    success: bool
    credits_added: int
    new_balance: int
    transaction_id: int
    external_payment_id: str


def credits_for_purchase(request: PurchaseRequest) -> int:
    """Credits granted for a purchase request."""
    if request.payment_method == "wechat":
        return (request.amount or 0) * CREDITS_PER_YUAN
    return APPLE_PRODUCT_CREDITS.get(request.product_id or "", DEFAULT_APPLE_CREDITS)


@router.post("/purchase", response_model=PurchaseResponse, status_code=status.HTTP_200_OK)
async def purchase_credits(
    request: PurchaseRequest,
    user_id: int = Depends(get_current_user_id),
    uow_factory=Depends(get_uow_factory),
) -> PurchaseResponse:
    """Grant credits for a (mock) purchase.

    Example:
        POST /api/v1/billing/purchase
        {"payment_method": "wechat", "amount": 5}

        Response:
        {"success": true, "credits_added": 50, "new_balance": 150, ...}

    Raises:
        404: No user with the caller's id
        422: Missing amount / product_id for the chosen method
    """
    credits_added = credits_for_purchase(request)
    external_payment_id = f"MOCK_{user_id}_{int(time.time())}"
    description = f"Purchased {credits_added} credits via {request.payment_method}"

    async with await uow_factory() as uow:
        transaction = await credits.grant_purchase(
            uow, user_id, credits_added, description, external_payment_id=external_payment_id
        )
        new_balance = await credits.get_balance(uow, user_id)

    logger.info(
        "billing.purchase_completed",
        user_id=user_id,
        payment_method=request.payment_method,
        credits_added=credits_added,
        external_payment_id=external_payment_id,
    )
    return PurchaseResponse(
        success=True,
        credits_added=credits_added,
        new_balance=new_balance,
        transaction_id=transaction.id,  # type: ignore[arg-type]
        external_payment_id=external_payment_id,
    )
