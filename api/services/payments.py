"""
Payment collaborator — the only contract this backend has with the payment provider.

Billing code never talks to the payment network. It asks whether a customer has
a default payment method on file and hands over "charge/credit N cents" requests,
which are recorded as pending Payment rows for the provider integration to settle.
"""

import logging
import uuid
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.payment import Payment
from models.user import User

logger = logging.getLogger(__name__)


class PaymentCollaborator(ABC):
    @abstractmethod
    async def has_default_payment_method(self, user_id: uuid.UUID) -> bool:
        ...

    @abstractmethod
    async def charge(
        self,
        user_id: uuid.UUID,
        amount_cents: int,
        payment_type: str,
        description: str,
        order_id: uuid.UUID | None = None,
        subscription_id: uuid.UUID | None = None,
    ) -> Payment:
        ...

    @abstractmethod
    async def credit(
        self,
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        subscription_id: uuid.UUID | None = None,
    ) -> Payment:
        ...


class LedgerPaymentCollaborator(PaymentCollaborator):
    """Records hand-offs in the payments table inside the caller's transaction."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def has_default_payment_method(self, user_id: uuid.UUID) -> bool:
        result = await self.db.execute(
            select(User.default_payment_method_id).where(User.id == user_id)
        )
        return result.scalar_one_or_none() is not None

    async def _record(self, **fields) -> Payment:
        if fields["amount_cents"] <= 0:
            raise ValueError("Payment amount must be positive cents")
        payment = Payment(status="pending", currency=settings.CURRENCY, **fields)
        self.db.add(payment)
        await self.db.flush()
        logger.info(
            "Payment hand-off: %s %d %s cents for user %s",
            payment.payment_type, payment.amount_cents, payment.currency, payment.user_id,
        )
        return payment

    async def charge(
        self,
        user_id: uuid.UUID,
        amount_cents: int,
        payment_type: str,
        description: str,
        order_id: uuid.UUID | None = None,
        subscription_id: uuid.UUID | None = None,
    ) -> Payment:
        return await self._record(
            user_id=user_id,
            amount_cents=amount_cents,
            payment_type=payment_type,
            description=description,
            order_id=order_id,
            subscription_id=subscription_id,
        )

    async def credit(
        self,
        user_id: uuid.UUID,
        amount_cents: int,
        description: str,
        subscription_id: uuid.UUID | None = None,
    ) -> Payment:
        return await self._record(
            user_id=user_id,
            amount_cents=amount_cents,
            payment_type="proration_credit",
            description=description,
            subscription_id=subscription_id,
        )


def get_payments(db: AsyncSession) -> PaymentCollaborator:
    return LedgerPaymentCollaborator(db)
