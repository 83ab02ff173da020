import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from ..database_model.user import User
from ..database_model.shop import Caisse
from ..database_model.voucher import Voucher, VoucherState
from ..core.errors import (
    NotFoundError,
    ValidationError,
    AuthorizationError,
    InsufficientBalanceError,
    ConcurrentUpdateError
)
from .cashback_service import CashbackService
from .setting_service import ProgramSettings

logger = logging.getLogger(__name__)


class VoucherService:
    """Service for the voucher lifecycle.

    A user owns at most one voucher row. Generating moves part of the
    cashback balance into it and (re)activates it; redeeming at a till
    marks it as used. Both transitions run in a single transaction with
    the cashback and voucher rows locked.
    """

    def __init__(self, db: AsyncSession, program_settings: ProgramSettings):
        self.db = db
        self.program_settings = program_settings
        self.cashback_service = CashbackService(db)

    async def get_voucher(self, user_id: int, for_update: bool = False) -> Optional[Voucher]:
        """Get the voucher row of a user, whatever its state."""
        query = select(Voucher).where(Voucher.user_id == user_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_active_voucher(self, user_id: int) -> Voucher:
        """Get the unredeemed voucher of a user."""
        voucher = await self.get_voucher(user_id)
        if voucher is None:
            raise NotFoundError("Aucun bon d'achat trouvé pour cet utilisateur.")
        if voucher.state != VoucherState.ACTIVE:
            raise NotFoundError("Aucun bon d'achat actif trouvé pour cet utilisateur.")
        return voucher

    def _expiration_date(self) -> date:
        return date.today() + timedelta(days=self.program_settings.voucher_durate)

    async def generate_voucher(self, user_id: int) -> Voucher:
        """Convert the user's threshold amount of cashback into a voucher.

        The threshold is debited from the cashback balance and credited to
        the voucher: an active voucher grows by the threshold, a redeemed
        one is reset to the threshold, and a new one starts at the
        threshold. The expiry date is pushed back in every case.
        """
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("Utilisateur non trouvé.")

        threshold = await self.cashback_service.get_threshold(user_id)

        try:
            cashback = await self.cashback_service.get_or_create_cashback(user_id, for_update=True)

            if cashback.amount < threshold:
                logger.warning(
                    f"Voucher refused for user {user_id}: balance {cashback.amount} below threshold {threshold}"
                )
                raise InsufficientBalanceError(required=threshold)

            expirate_date = self._expiration_date()
            voucher = await self.get_voucher(user_id, for_update=True)

            if voucher is None:
                voucher = Voucher(
                    user_id=user_id,
                    amount=threshold,
                    expirate_date=expirate_date,
                    state=VoucherState.ACTIVE
                )
                self.db.add(voucher)
            elif voucher.state == VoucherState.ACTIVE:
                voucher.amount += threshold
                voucher.expirate_date = expirate_date
            else:
                voucher.amount = threshold
                voucher.expirate_date = expirate_date
                voucher.state = VoucherState.ACTIVE
                voucher.caisse_id = None
                voucher.ticket_date = None
                voucher.ticket_number = None
                voucher.ticket_amount = None
                voucher.ticket_cashback = None

            cashback.amount -= threshold

            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning(f"Concurrent update while generating voucher for user {user_id}")
            raise ConcurrentUpdateError() from e
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(voucher)

        logger.info(
            f"Voucher {voucher.id} generated for user {user_id}: amount={voucher.amount}, "
            f"expires {voucher.expirate_date}, remaining cashback={cashback.amount}"
        )
        return voucher

    async def validate_voucher(
        self,
        caisse_id: Optional[int],
        user_id: Optional[int],
        ticket_date: Optional[str],
        ticket_number: Optional[str],
        ticket_amount: Optional[float],
        ticket_cashback: Optional[float],
        current_caisse_id: Optional[int] = None
    ) -> Voucher:
        """Redeem the user's active voucher against a till ticket."""
        required = [
            (caisse_id, "Identifiant de la caisse non fourni."),
            (user_id, "Identifiant de l'utilisateur non fourni."),
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
            raise AuthorizationError("Vous ne pouvez valider un bon d'achat que pour votre propre caisse.")

        caisse = await self.db.get(Caisse, caisse_id)
        if not caisse:
            raise NotFoundError("La caisse n'existe pas.")

        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError("L'utilisateur n'existe pas.")

        try:
            result = await self.db.execute(
                select(Voucher)
                .where(Voucher.user_id == user_id, Voucher.state == VoucherState.ACTIVE)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            voucher = result.scalar_one_or_none()

            if voucher is None:
                raise NotFoundError("Aucun bon d'achat actif à valider pour cet utilisateur.")

            if voucher.expirate_date is not None and voucher.expirate_date < date.today():
                raise ValidationError("Le bon d'achat a expiré.")

            voucher.caisse_id = caisse_id
            voucher.ticket_date = ticket_date
            voucher.ticket_number = ticket_number
            voucher.ticket_amount = ticket_amount
            voucher.ticket_cashback = ticket_cashback
            voucher.state = VoucherState.REDEEMED

            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.warning(f"Concurrent update while redeeming voucher of user {user_id}")
            raise ConcurrentUpdateError() from e
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(voucher)

        logger.info(f"Voucher {voucher.id} of user {user_id} redeemed at caisse {caisse_id} (ticket {ticket_number})")
        return voucher
