import logging
import secrets
import string
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database_model.user import User
from ..database_model.sponsoring import SponsoringWallet
from ..core.errors import ValidationError, InvalidCodeError, NotFoundError
from ..core.config import settings
from .setting_service import ProgramSettings

logger = logging.getLogger(__name__)


class SponsoringService:
    """Service for referral codes and the sponsoring wallet."""

    def __init__(self, db: AsyncSession, program_settings: Optional[ProgramSettings] = None):
        self.db = db
        self.program_settings = program_settings or ProgramSettings()

    async def get_user_by_sponsoring_code(self, code: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.sponsoring_code == code)
        )
        return result.scalar_one_or_none()

    async def check_code(self, code: Optional[str]) -> User:
        """Check that a sponsoring code belongs to a registered user."""
        if not code:
            raise ValidationError("Veuillez fournir un code de parrainage.")

        sponsor = await self.get_user_by_sponsoring_code(code)
        if not sponsor:
            raise NotFoundError("Aucun utilisateur trouvé avec ce code de parrainage.")
        return sponsor

    async def resolve_sponsor(self, code: Optional[str]) -> Optional[User]:
        """Resolve the sponsor of a new user from the code they entered.

        Returns None when no code was given.
        """
        if not code:
            return None

        if len(code) < settings.min_sponsor_code_length:
            raise ValidationError(
                f"Le code de parrainage doit contenir au moins {settings.min_sponsor_code_length} caractères."
            )

        sponsor = await self.get_user_by_sponsoring_code(code)
        if not sponsor:
            logger.warning(f"Registration attempted with unknown sponsoring code {code}")
            raise InvalidCodeError()
        return sponsor

    def get_amounts(self) -> dict:
        return {
            "godson_amount": self.program_settings.godson_amount,
            "godfather_amount": self.program_settings.godfather_amount
        }

    async def create_wallet_entry(
        self,
        user_id: int,
        amount: float,
        sponsor_id: Optional[int] = None
    ) -> SponsoringWallet:
        """Add a wallet row for a user. The caller commits."""
        entry = SponsoringWallet(user_id=user_id, sponsor_id=sponsor_id, amount=amount)
        self.db.add(entry)
        return entry

    async def grant_godson_credit(self, user: User, sponsor: User) -> SponsoringWallet:
        """Credit the referred user with the configured godson amount.

        The sponsor is not credited.
        """
        amount = self.program_settings.godson_amount
        entry = await self.create_wallet_entry(user.id, amount, sponsor_id=sponsor.id)
        logger.info(f"Sponsoring credit of {amount} for user {user.id} referred by user {sponsor.id}")
        return entry

    async def get_wallet_balance(self, user_id: int) -> float:
        """Sum of the sponsoring credits of a user."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(SponsoringWallet.amount), 0.0))
            .where(SponsoringWallet.user_id == user_id)
        )
        return float(result.scalar() or 0.0)

    async def generate_unique_code(self) -> str:
        """Generate a sponsoring code no user holds yet."""
        alphabet = string.ascii_uppercase + string.digits
        while True:
            code = ''.join(secrets.choice(alphabet) for _ in range(settings.sponsoring_code_length))
            existing = await self.get_user_by_sponsoring_code(code)
            if not existing:
                return code
