"""SQLAlchemy models for FitFlow (PostgreSQL)."""

from .base import Base
from .customer import Address, Customer
from .delivery_cycle import DeliveryCycle
from .subscription import Subscription, SubscriptionHistory
from .order import Order
from .preorder import Preorder
from .promo_code import PromoCode, PromoCodeUsage
from .catalog import BoxType, SiteConfig

__all__ = [
    "Base",
    "Customer",
    "Address",
    "DeliveryCycle",
    "Subscription",
    "SubscriptionHistory",
    "Order",
    "Preorder",
    "PromoCode",
    "PromoCodeUsage",
    "BoxType",
    "SiteConfig",
]
