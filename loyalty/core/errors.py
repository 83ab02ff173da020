from fastapi import HTTPException, status
from typing import Any, Dict, Optional

class LoyaltyException(HTTPException):
    """Base exception for the loyalty API.

    ``extra`` is merged into the error envelope next to ``message``.
    """
    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        headers: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.extra = extra or {}

class ValidationError(LoyaltyException):
    """Missing or malformed field."""
    def __init__(self, detail: str = "Données invalides."):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )

class InsufficientBalanceError(LoyaltyException):
    """Cashback balance below the voucher threshold."""
    def __init__(self, required: float):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Le montant du cashback est insuffisant. Minimum requis : {required:g}.",
            extra={"required": required}
        )

class InvalidCodeError(LoyaltyException):
    """Sponsoring code does not match any user."""
    def __init__(self, detail: str = "Le code de parrainage est incorrect."):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )

class AuthenticationError(LoyaltyException):
    """Authentication failed."""
    def __init__(self, detail: str = "Authentification échouée."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )

class AuthorizationError(LoyaltyException):
    """Authorization failed."""
    def __init__(self, detail: str = "Accès non autorisé."):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )

class NotFoundError(LoyaltyException):
    """Resource not found."""
    def __init__(self, detail: str = "Ressource introuvable."):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )

class DuplicateError(LoyaltyException):
    """Uniqueness violation."""
    def __init__(self, detail: str = "Cette ressource existe déjà."):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )

class ConcurrentUpdateError(LoyaltyException):
    """Row changed by another request between read and write."""
    def __init__(self, detail: str = "Opération concurrente détectée. Veuillez réessayer."):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )

class InternalError(LoyaltyException):
    """Unexpected failure."""
    def __init__(self, detail: str = "Une erreur interne s'est produite."):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail
        )
