"""Credit balance operations.

Every balance change pairs an additive adjustment on the user row with one
ledger entry. Callers pass the UnitOfWork so both writes share a transaction:
they commit together or roll back together.
"""

import structlog

from fortyfive.models.template import Template
from fortyfive.models.transaction import Transaction, TransactionType
from fortyfive.services.exceptions import InsufficientCreditsError, UserNotFound, ValidationError
from fortyfive.uow import UnitOfWork

logger = structlog.get_logger(__name__)


async def get_balance(uow: UnitOfWork, user_id: int) -> int:
    """Return the user's current balance.

    Raises:
        UserNotFound: If the user does not exist
    """
    user = await uow.users.get_by_id(user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user.credits


async def ensure_balance(uow: UnitOfWork, user_id: int, required: int) -> int:
    """Check that the user can afford `required` credits.

    The check is a plain read: a concurrent debit can still land between this
    check and the caller's own debit.

    Returns:
        Current balance

    Raises:
        UserNotFound: If the user does not exist
        InsufficientCreditsError: If balance < required
    """
    balance = await get_balance(uow, user_id)
    if balance < required:
        logger.warning(
            "credits.insufficient",
            user_id=user_id,
            current_balance=balance,
            required_amount=required,
        )
        raise InsufficientCreditsError(user_id, balance, required)
    return balance


async def debit_for_generation(uow: UnitOfWork, user_id: int, template: Template) -> Transaction:
    """Debit template.credit_cost and append the matching generation entry.

    Raises:
        UserNotFound: If the user does not exist
    """
    await uow.users.adjust_credits(user_id, -template.credit_cost)
    transaction = await uow.transactions.append(
        user_id=user_id,
        type=TransactionType.GENERATION,
        amount=-template.credit_cost,
        description=f"Used '{template.name}' template",
        related_template_id=template.id,
    )
    logger.info(
        "credits.debited",
        user_id=user_id,
        amount=template.credit_cost,
        template_id=template.id,
    )
    return transaction


async def grant_purchase(
    uow: UnitOfWork,
    user_id: int,
    amount: int,
    description: str,
    external_payment_id: str | None = None,
) -> Transaction:
    """Credit a purchase and append the matching purchase entry.

    Raises:
        ValidationError: If amount is not positive
        UserNotFound: If the user does not exist
    """
    if amount <= 0:
        raise ValidationError("invalid amount: must be positive")

    await uow.users.adjust_credits(user_id, amount)
    transaction = await uow.transactions.append(
        user_id=user_id,
        type=TransactionType.PURCHASE,
        amount=amount,
        description=description,
        external_payment_id=external_payment_id,
    )
    logger.info(
        "credits.granted",
        user_id=user_id,
        amount=amount,
        external_payment_id=external_payment_id,
    )
    return transaction
