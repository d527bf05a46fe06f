from .outlet import Outlet
from .user import User
from .category import Category
from .product import Product
from .order import Order, OrderItem, OrderCounter
from .credit import CreditTransaction
from .credit_payment import CreditPayment
from .restock import RestockRequest
from .status_history import StatusHistory

__all__ = [
    "Outlet",
    "User",
    "Category",
    "Product",
    "Order",
    "OrderItem",
    "OrderCounter",
    "CreditTransaction",
    "CreditPayment",
    "RestockRequest",
    "StatusHistory",
]
