import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database_model.setting import Setting, SettingSponsoring, SINGLETON_ID
from ..core.errors import ValidationError
from ..core.config import settings

logger = logging.getLogger(__name__)


class ProgramSettings(BaseModel):
    """Snapshot of the program-wide settings rows, injected into services."""
    model_config = ConfigDict(frozen=True)

    cashback_amount: float = 0.0
    voucher_durate: int = settings.default_voucher_durate
    godson_amount: float = 0.0
    godfather_amount: float = 0.0


class SettingService:
    """Service for the singleton program settings."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_setting(self) -> Optional[Setting]:
        result = await self.db.execute(
            select(Setting).where(Setting.id == SINGLETON_ID)
        )
        return result.scalar_one_or_none()

    async def get_sponsoring_setting(self) -> Optional[SettingSponsoring]:
        result = await self.db.execute(
            select(SettingSponsoring).where(SettingSponsoring.id == SINGLETON_ID)
        )
        return result.scalar_one_or_none()

    async def load_program_settings(self) -> ProgramSettings:
        """Load both singleton rows, falling back to configured defaults."""
        setting = await self.get_setting()
        sponsoring = await self.get_sponsoring_setting()

        values = {}
        if setting:
            values["cashback_amount"] = setting.cashback_amount or 0.0
            if setting.voucher_durate is not None:
                values["voucher_durate"] = setting.voucher_durate
        if sponsoring:
            values["godson_amount"] = sponsoring.godson_amount or 0.0
            values["godfather_amount"] = sponsoring.godfather_amount or 0.0

        return ProgramSettings(**values)

    async def _get_or_create_setting(self) -> Setting:
        setting = await self.get_setting()
        if setting is None:
            setting = Setting(
                id=SINGLETON_ID,
                cashback_amount=0.0,
                voucher_durate=settings.default_voucher_durate
            )
            self.db.add(setting)
        return setting

    async def get_cashback_amount(self) -> float:
        setting = await self.get_setting()
        return setting.cashback_amount if setting else 0.0

    async def update_cashback_amount(self, amount: Optional[float]) -> Setting:
        """Set the cashback accrual amount."""
        if not amount:
            raise ValidationError("Veuillez fournir le montant du cashback.")
        if amount < 0:
            raise ValidationError("Le montant du cashback doit être positif.")

        setting = await self._get_or_create_setting()
        setting.cashback_amount = amount

        await self.db.commit()
        await self.db.refresh(setting)

        logger.info(f"Cashback amount set to {amount}")
        return setting

    async def update_voucher_durate(self, days: Optional[int]) -> Setting:
        """Set how many days a newly generated voucher stays valid."""
        if not days or days < 1:
            raise ValidationError("La durée de validité du bon d'achat doit être d'au moins un jour.")

        setting = await self._get_or_create_setting()
        setting.voucher_durate = days

        await self.db.commit()
        await self.db.refresh(setting)

        logger.info(f"Voucher validity set to {days} days")
        return setting

    async def update_sponsoring_amounts(
        self,
        godson_amount: Optional[float],
        godfather_amount: Optional[float]
    ) -> SettingSponsoring:
        """Set the referral bonus amounts. Omitted values are left unchanged."""
        if godson_amount is None and godfather_amount is None:
            raise ValidationError("Veuillez fournir au moins un montant de parrainage.")
        for value in (godson_amount, godfather_amount):
            if value is not None and value < 0:
                raise ValidationError("Les montants de parrainage doivent être positifs.")

        sponsoring = await self.get_sponsoring_setting()
        if sponsoring is None:
            sponsoring = SettingSponsoring(id=SINGLETON_ID, godson_amount=0.0, godfather_amount=0.0)
            self.db.add(sponsoring)

        if godson_amount is not None:
            sponsoring.godson_amount = godson_amount
        if godfather_amount is not None:
            sponsoring.godfather_amount = godfather_amount

        await self.db.commit()
        await self.db.refresh(sponsoring)

        logger.info(
            f"Sponsoring amounts set to godson={sponsoring.godson_amount} "
            f"godfather={sponsoring.godfather_amount}"
        )
        return sponsoring
