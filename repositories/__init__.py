from repositories.carts import CartRepository
from repositories.categories import CategoryRepository
from repositories.orders import OrderRepository
from repositories.payment_events import PaymentEventRepository
from repositories.products import ProductRepository
from repositories.reviews import ReviewRepository
from repositories.users import UserRepository

__all__ = [
    "CartRepository",
    "CategoryRepository",
    "OrderRepository",
    "PaymentEventRepository",
    "ProductRepository",
    "ReviewRepository",
    "UserRepository",
]
