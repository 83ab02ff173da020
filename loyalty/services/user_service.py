import logging
import uuid
from datetime import date
from typing import Optional, Dict, Any, List, Callable, Awaitable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database_model.user import User
from ..database_model.cashback import Cashback, UserCashback
from ..core.security import verify_password, get_password_hash, create_access_token, ROLE_USER
from ..core.errors import (
    AuthenticationError,
    NotFoundError,
    ValidationError,
    DuplicateError,
    ConcurrentUpdateError
)
from ..core.config import settings
from .setting_service import ProgramSettings
from .sponsoring_service import SponsoringService
from .legacy_card_service import LegacyCardService

logger = logging.getLogger(__name__)

PHONE_TAKEN_MESSAGE = "Ce numéro de portable est déjà associé à une carte de fidélité."

REGISTRATION_ATTEMPTS = 3


class UserService:
    """Service for loyalty-card holders: check, registration and login."""

    def __init__(
        self,
        db: AsyncSession,
        program_settings: Optional[ProgramSettings] = None,
        legacy_card_service: Optional[LegacyCardService] = None
    ):
        self.db = db
        self.program_settings = program_settings or ProgramSettings()
        self.sponsoring_service = SponsoringService(db, self.program_settings)
        self.legacy_card_service = legacy_card_service or LegacyCardService()

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_phone(self, phone: str) -> Optional[User]:
        """Get user by phone number."""
        result = await self.db.execute(
            select(User).where(User.phone == phone)
        )
        return result.scalar_one_or_none()

    async def get_user_by_sponsoring_code(self, code: str) -> Optional[User]:
        return await self.sponsoring_service.get_user_by_sponsoring_code(code)

    @staticmethod
    def user_response(user: User, **extra: Any) -> Dict[str, Any]:
        """Public representation of a card holder."""
        response = {
            "id": user.id,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "birthday": user.birthday.isoformat() if user.birthday else None,
            "phone": user.phone,
            "barcode": user.barcode,
            "sponsoring_code": user.sponsoring_code,
            "image_url": user.image_url,
            "whatsapp": user.is_whatsapp
        }
        response.update(extra)
        return response

    def _validate_registration(
        self,
        first_name: Optional[str],
        last_name: Optional[str],
        phone: Optional[str],
        password: Optional[str]
    ) -> None:
        if not first_name:
            raise ValidationError("Veuillez fournir le nom.")
        if not last_name:
            raise ValidationError("Veuillez fournir le prénom.")
        if not phone:
            raise ValidationError("Veuillez fournir le numéro de portable.")
        if not password:
            raise ValidationError("Veuillez fournir le mot de passe.")
        if len(password) < settings.min_password_length:
            raise ValidationError(
                f"Le mot de passe doit contenir au moins {settings.min_password_length} caractères."
            )

    async def _ensure_phone_available(self, phone: str) -> None:
        if await self.get_user_by_phone(phone):
            logger.warning(f"Registration refused: phone {phone} already registered")
            raise DuplicateError(PHONE_TAKEN_MESSAGE)

    async def _new_user(
        self,
        phone: str,
        password: str,
        first_name: str,
        last_name: str,
        birthday: Optional[date],
        is_whatsapp: bool = False,
        sponsor: Optional[User] = None
    ) -> User:
        user = User(
            phone=phone,
            barcode=str(uuid.uuid4()),
            sponsoring_code=await self.sponsoring_service.generate_unique_code(),
            sponsor_id=sponsor.id if sponsor else None,
            hashed_password=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            birthday=birthday,
            is_whatsapp=bool(is_whatsapp)
        )
        self.db.add(user)
        await self.db.flush()  # Get user ID
        return user

    async def _commit_registration(self, phone: str, create: Callable[[], Awaitable[User]]) -> User:
        """Run ``create`` and commit, retrying when a generated code or barcode clashes.

        A unique violation on the phone number is reported as a duplicate.
        """
        for attempt in range(1, REGISTRATION_ATTEMPTS + 1):
            try:
                user = await create()
                await self.db.commit()
                return user
            except IntegrityError as e:
                await self.db.rollback()
                if await self.get_user_by_phone(phone):
                    logger.warning(f"Registration refused: phone {phone} registered concurrently")
                    raise DuplicateError(PHONE_TAKEN_MESSAGE) from e
                if attempt == REGISTRATION_ATTEMPTS:
                    logger.error(f"Registration of {phone} failed after {attempt} generated code clashes")
                    raise ConcurrentUpdateError() from e
                logger.warning(f"Generated code clash while registering {phone}, retrying")

    async def user_check(self, phone: Optional[str]) -> Dict[str, Any]:
        """Look a phone number up before registration.

        Returns the holder's name and balance when the number belongs to a
        card of the legacy directory.
        """
        if not phone:
            raise ValidationError("Veuillez fournir le numéro de portable.")

        if await self.get_user_by_phone(phone):
            raise DuplicateError(
                "Ce numéro de portable est déjà associé à une carte de fidélité. Veuillez vous connecter."
            )

        card = await self.legacy_card_service.find_by_phone(phone)
        if not card:
            raise NotFoundError(
                "Cette carte de fidélité n'est plus valide. "
                "Veuillez vous inscrire en indiquant ne pas avoir de carte."
            )
        return card

    async def register_with_account(
        self,
        first_name: Optional[str],
        last_name: Optional[str],
        birthday: Optional[date],
        amount: Optional[float],
        phone: Optional[str],
        password: Optional[str]
    ) -> Dict[str, Any]:
        """Register the holder of a legacy card, carrying over its balance."""
        self._validate_registration(first_name, last_name, phone, password)
        if amount is not None and amount < 0:
            raise ValidationError("Le montant du cashback doit être positif.")
        await self._ensure_phone_available(phone)

        async def create() -> User:
            user = await self._new_user(phone, password, first_name, last_name, birthday)

            self.db.add(Cashback(user_id=user.id, amount=amount or 0.0))
            await self.sponsoring_service.create_wallet_entry(user.id, 0.0)
            self.db.add(UserCashback(user_id=user.id, amount=settings.default_cashback_threshold))
            return user

        user = await self._commit_registration(phone, create)

        token = create_access_token(user.id, ROLE_USER)
        logger.info(f"User {user.id} registered with legacy card (initial cashback {amount or 0.0})")
        return self.user_response(user, token=token)

    async def register_without_account(
        self,
        phone: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        birthday: Optional[date],
        sponsor_code: Optional[str],
        is_whatsapp: Optional[bool],
        password: Optional[str]
    ) -> Dict[str, Any]:
        """Register a new card holder, optionally referred by a sponsor."""
        self._validate_registration(first_name, last_name, phone, password)
        await self._ensure_phone_available(phone)

        if sponsor_code and len(sponsor_code) < settings.min_sponsor_code_length:
            raise ValidationError(
                f"Le code de parrainage doit contenir au moins {settings.min_sponsor_code_length} caractères."
            )

        if await self.legacy_card_service.find_by_phone(phone):
            raise DuplicateError(
                "Ce numéro de portable est déjà associé à une carte de fidélité. "
                "Veuillez vous connecter en indiquant que vous possédez déjà une carte de fidélité."
            )

        sponsor = await self.sponsoring_service.resolve_sponsor(sponsor_code)
        sponsor_id = sponsor.id if sponsor else None

        async def create() -> User:
            # a rollback expires the sponsor, reload it from the session
            current_sponsor = await self.db.get(User, sponsor_id) if sponsor_id else None
            user = await self._new_user(
                phone, password, first_name, last_name, birthday,
                is_whatsapp=is_whatsapp or False,
                sponsor=current_sponsor
            )

            self.db.add(UserCashback(user_id=user.id, amount=settings.default_cashback_threshold))
            if current_sponsor:
                await self.sponsoring_service.grant_godson_credit(user, current_sponsor)
            self.db.add(Cashback(user_id=user.id, amount=0.0))
            return user

        user = await self._commit_registration(phone, create)

        token = create_access_token(user.id, ROLE_USER)
        logger.info(f"User {user.id} registered" + (f" with sponsor {sponsor_id}" if sponsor_id else ""))
        return self.user_response(user, token=token)

    async def login(self, phone: Optional[str], password: Optional[str]) -> Dict[str, Any]:
        """Authenticate a card holder and return a token with the current balance."""
        if not phone:
            raise AuthenticationError("Numéro de portable non fourni.")
        if not password:
            raise AuthenticationError("Mot de passe non fourni.")
        if len(password) < settings.min_password_length:
            raise AuthenticationError(
                f"Le mot de passe doit contenir au moins {settings.min_password_length} caractères."
            )

        user = await self.get_user_by_phone(phone)
        if not user:
            raise AuthenticationError("Numéro de téléphone non enregistré. Veuillez créer un compte.")

        if not verify_password(password, user.hashed_password):
            logger.warning(f"Failed login for user {user.id}")
            raise AuthenticationError("Numéro de téléphone ou mot de passe incorrect.")

        result = await self.db.execute(
            select(Cashback.amount).where(Cashback.user_id == user.id)
        )
        cashback = result.scalar_one_or_none() or 0.0

        token = create_access_token(user.id, ROLE_USER)
        return self.user_response(user, cashback=cashback, token=token)

    async def list_users(self) -> List[Dict[str, Any]]:
        """All card holders with their cashback balance."""
        result = await self.db.execute(
            select(User, Cashback.amount)
            .outerjoin(Cashback, Cashback.user_id == User.id)
            .order_by(User.id)
        )
        return [
            self.user_response(user, cashback=amount or 0.0)
            for user, amount in result.all()
        ]
