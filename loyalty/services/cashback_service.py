import logging
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm.exc import StaleDataError

from ..database_model.user import User
from ..database_model.shop import Caisse
from ..database_model.cashback import Cashback, UserCashback
from ..database_model.transaction import TransactionFidelityCard
from ..core.errors import NotFoundError, ValidationError, AuthorizationError, ConcurrentUpdateError
from ..core.config import settings

logger = logging.getLogger(__name__)


class CashbackService:
    """Service for the cashback ledger: balances, thresholds and tickets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_cashback(self, user_id: int, for_update: bool = False) -> Optional[Cashback]:
        """Get the cashback ledger row of a user.

        With ``for_update`` the row is locked until the transaction ends and
        its attributes are reloaded from the database.
        """
        query = select(Cashback).where(Cashback.user_id == user_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_cashback(self, user_id: int, for_update: bool = False) -> Cashback:
        """Get the ledger row, creating it with a zero balance when missing."""
        cashback = await self.get_cashback(user_id, for_update=for_update)
        if cashback is None:
            cashback = Cashback(user_id=user_id, amount=0.0)
            self.db.add(cashback)
            await self.db.flush()
        return cashback

    async def get_balance(self, user_id: int) -> float:
        """Get the current cashback balance of a user."""
        cashback = await self.get_cashback(user_id)
        if not cashback:
            raise NotFoundError("Cashback non trouvé pour cet utilisateur.")
        return cashback.amount

    async def get_user_cashback(self, user_id: int) -> Optional[UserCashback]:
        result = await self.db.execute(
            select(UserCashback).where(UserCashback.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_threshold(self, user_id: int) -> float:
        """Get the minimum balance the user needs to generate a voucher."""
        user_cashback = await self.get_user_cashback(user_id)
        if not user_cashback:
            raise NotFoundError("Montant du cashback non trouvé pour cet utilisateur.")
        return user_cashback.amount

    async def update_threshold(self, user_id: int, amount: Optional[float]) -> bool:
        """Set the voucher threshold of a user.

        Returns True when the threshold row had to be created.
        """
        if not amount:
            raise ValidationError("Montant non fourni.")
        if amount < 0:
            raise ValidationError("Le montant doit être positif.")

        user_cashback = await self.get_user_cashback(user_id)
        created = user_cashback is None
        if created:
            user_cashback = UserCashback(user_id=user_id, amount=amount)
            self.db.add(user_cashback)
        else:
            user_cashback.amount = amount

        await self.db.commit()

        logger.info(f"Voucher threshold of user {user_id} set to {amount}")
        return created

    async def get_transactions(self, user_id: int) -> List[TransactionFidelityCard]:
        """Get the validated tickets of a user, newest first."""
        result = await self.db.execute(
            select(TransactionFidelityCard)
            .where(TransactionFidelityCard.user_id == user_id)
            .order_by(TransactionFidelityCard.created_at.desc(), TransactionFidelityCard.id.desc())
        )
        return result.scalars().all()

    async def credit_ticket(
        self,
        caisse_id: Optional[int],
        user_id: Optional[int],
        payment_type: Optional[int],
        ticket_date: Optional[str],
        ticket_number: Optional[str],
        ticket_amount: Optional[float],
        ticket_cashback: Optional[float],
        current_caisse_id: Optional[int] = None
    ) -> TransactionFidelityCard:
        """Record a purchase ticket validated at a till.

        Every field is required and checked for truthiness, so a ticket
        cashback of 0 is rejected as missing. The same ticket number can be
        recorded twice. The user's cashback balance is only credited when
        ``settings.credit_ticket_cashback`` is enabled.
        """
        required = [
            (caisse_id, "Identifiant de la caisse non fourni."),
            (user_id, "Identifiant de l'utilisateur non fourni."),
            (payment_type, "Type de paiement non fourni."),
            (ticket_date, "Date du ticket non fournie."),
            (ticket_number, "Numéro du ticket non fourni."),
            (ticket_amount, "Montant du ticket non fourni."),
            (ticket_cashback, "Cashback du ticket non fourni."),
        ]
        for value, message in required:
            if not value:
                raise ValidationError(message)

        if ticket_amount < 0:
            raise ValidationError("Le montant du ticket doit être positif.")
        if ticket_cashback < 0:
            raise ValidationError("Le cashback du ticket doit être positif.")

        if current_caisse_id is not None and current_caisse_id != caisse_id:
            raise AuthorizationError("Vous ne pouvez valider un ticket que pour votre propre caisse.")

        caisse = await self.db.get(Caisse, caisse_id)
        if not caisse:
            raise NotFoundError("La caisse n'existe pas.")

        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("L'utilisateur n'existe pas.")

        try:
            transaction = TransactionFidelityCard(
                user_id=user_id,
                caisse_id=caisse_id,
                payment_type=payment_type,
                ticket_date=ticket_date,
                ticket_number=ticket_number,
                ticket_amount=ticket_amount,
                ticket_cashback=ticket_cashback,
                state=1
            )
            self.db.add(transaction)

            if settings.credit_ticket_cashback:
                cashback = await self.get_or_create_cashback(user_id, for_update=True)
                cashback.amount += ticket_cashback

            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning(f"Concurrent cashback update while recording ticket {ticket_number} for user {user_id}")
            raise ConcurrentUpdateError() from e
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(transaction)

        logger.info(
            f"Ticket {ticket_number} recorded for user {user_id} at caisse {caisse_id} "
            f"(amount={ticket_amount}, cashback={ticket_cashback})"
        )
        return transaction
