from marketplace.models.database import Base, Database, get_db
from marketplace.models.user import Role, User
from marketplace.models.auth_token import OneTimeToken
from marketplace.models.category import Category
from marketplace.models.product import Product
from marketplace.models.order import Order, OrderItem, OrderStatus
from marketplace.models.payment import Payment, PaymentMethod, PaymentStatus

__all__ = [
    "Base",
    "Database",
    "get_db",
    "Role",
    "User",
    "OneTimeToken",
    "Category",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentMethod",
    "PaymentStatus",
]
