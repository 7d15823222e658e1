"""
Credit Ledger - the only writer of User.credits after signup.

Every mutation is a single UPDATE statement evaluated by the database, so a
concurrent request can never observe and overwrite a stale balance.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from visionai.config import settings
from visionai.db.models import User
from visionai.exceptions import InsufficientCreditsError, UserNotFoundError
from visionai.models.api import PlanTier
from visionai.models.domain import UNLIMITED_CREDITS
from visionai.observability.metrics import metrics

logger = get_logger(__name__)


class CreditLedger:
    """Atomic credit balance operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def apply_grant(self, user_id: UUID, credits_to_grant: int, plan_id: str) -> int:
        """
        Apply a payment's credit grant and plan change.

        Unlimited grants set the balance to the configured ceiling instead of
        incrementing. Does not commit; the caller owns the transaction.

        Returns:
            The new balance

        Raises:
            UserNotFoundError: User doesn't exist
        """
        values: dict[str, object] = {}
        if credits_to_grant == UNLIMITED_CREDITS:
            values["credits"] = settings.unlimited_credits_ceiling
        else:
            values["credits"] = User.credits + credits_to_grant
        if plan_id != PlanTier.FREE.value:
            values["plan"] = plan_id

        stmt = update(User).where(User.id == user_id).values(**values).returning(User.credits)
        result = await self.session.execute(stmt)
        new_balance = result.scalar_one_or_none()
        if new_balance is None:
            raise UserNotFoundError(user_id)

        logger.info(
            "credits_granted",
            user_id=str(user_id),
            credits_to_grant=credits_to_grant,
            plan_id=plan_id,
            new_balance=new_balance,
        )
        return int(new_balance)

    async def deduct(self, user_id: UUID, cost: int) -> int:
        """
        Deduct credits, guarded by credits >= cost, and commit.

        Entry point for image generation, which lives outside this service.

        Returns:
            The new balance

        Raises:
            ValueError: cost is not positive
            InsufficientCreditsError: Balance lower than cost
            UserNotFoundError: User doesn't exist
        """
        if cost <= 0:
            raise ValueError(f"Deduction must be positive: {cost}")

        stmt = (
            update(User)
            .where(User.id == user_id, User.credits >= cost)
            .values(credits=User.credits - cost)
            .returning(User.credits)
        )
        result = await self.session.execute(stmt)
        new_balance = result.scalar_one_or_none()

        if new_balance is None:
            await self.session.rollback()
            balance = await self.get_balance(user_id)
            logger.warning(
                "credit_deduction_denied", user_id=str(user_id), balance=balance, cost=cost
            )
            raise InsufficientCreditsError(balance, cost)

        await self.session.commit()
        metrics.credits_deducted_total.inc(cost)
        return int(new_balance)

    async def get_balance(self, user_id: UUID) -> int:
        """
        Current balance.

        Raises:
            UserNotFoundError: User doesn't exist
        """
        result = await self.session.execute(select(User.credits).where(User.id == user_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise UserNotFoundError(user_id)
        return int(balance)
