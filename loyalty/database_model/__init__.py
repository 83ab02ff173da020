"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from .user import User, Admin
from .shop import Shop, Caisse
from .cashback import Cashback, UserCashback
from .voucher import Voucher, VoucherState
from .transaction import TransactionFidelityCard
from .promotion import Promotion
from .setting import Setting, SettingSponsoring, SINGLETON_ID
from .sponsoring import SponsoringWallet

__all__ = [
    "User",
    "Admin",
    "Shop",
    "Caisse",
    "Cashback",
    "UserCashback",
    "Voucher",
    "VoucherState",
    "TransactionFidelityCard",
    "Promotion",
    "Setting",
    "SettingSponsoring",
    "SINGLETON_ID",
    "SponsoringWallet",
]
