"""
Service wiring and request dependencies.

build_services() constructs every repository and service once; main.py
keeps the result on ``app.state.services`` and route handlers receive it
through ``Depends(get_services)``.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database

import config
from errors import ForbiddenError, UnauthorizedError
from repositories import (
    CartRepository,
    CategoryRepository,
    OrderRepository,
    PaymentEventRepository,
    ProductRepository,
    ReviewRepository,
    UserRepository,
)
from schemas import Role
from security import decode_access_token
from services.auth import AuthService
from services.cart import CartService
from services.categories import CategoryService
from services.dashboard import DashboardService
from services.gateway import StripeGateway
from services.mailer import ResendMailer
from services.media import CloudinaryMedia
from services.orders import OrderService
from services.payment_worker import PaymentWorker
from services.payments import PaymentService
from services.products import ProductService
from services.reviews import ReviewService
from services.users import UserService


@dataclass
class Services:
    db: Database
    users: UserRepository
    auth: AuthService
    user_admin: UserService
    categories: CategoryService
    products: ProductService
    cart: CartService
    orders: OrderService
    payments: PaymentService
    reviews: ReviewService
    dashboard: DashboardService
    gateway: Any
    worker: PaymentWorker


def build_services(db: Database, gateway=None, media=None, mailer=None) -> Services:
    if gateway is None:
        gateway = StripeGateway(
            config.STRIPE_SECRET_KEY,
            config.STRIPE_WEBHOOK_SECRET,
            currency=config.STRIPE_CURRENCY,
            timeout=config.STRIPE_TIMEOUT_SECONDS,
            backend_origin=config.BACKEND_ORIGIN,
        )
    if media is None:
        media = CloudinaryMedia(config.CLOUDINARY_CLOUD_NAME, config.CLOUDINARY_API_KEY, config.CLOUDINARY_API_SECRET)
    if mailer is None:
        mailer = ResendMailer(config.RESEND_API_KEY, config.MAIL_FROM)

    users = UserRepository(db)
    categories = CategoryRepository(db)
    products = ProductRepository(db)
    carts = CartRepository(db)
    orders = OrderRepository(db)
    reviews = ReviewRepository(db)
    events = PaymentEventRepository(db)

    order_service = OrderService(orders, products, carts, users, config.RESTORE_STOCK_ON_CANCEL)
    payment_service = PaymentService(
        gateway, orders, events, order_service, max_attempts=config.PAYMENT_WORKER_MAX_ATTEMPTS
    )
    return Services(
        db=db,
        users=users,
        auth=AuthService(users, mailer, config.FRONTEND_URL),
        user_admin=UserService(users, media),
        categories=CategoryService(categories, products),
        products=ProductService(products, categories, media),
        cart=CartService(carts, products),
        orders=order_service,
        payments=payment_service,
        reviews=ReviewService(reviews, products, orders, users),
        dashboard=DashboardService(users, products, orders, reviews),
        gateway=gateway,
        worker=PaymentWorker(payment_service, interval=config.PAYMENT_WORKER_INTERVAL),
    )


_bearer = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Database not available. Set DATABASE_URL and DATABASE_NAME.")
    return services


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    if credentials is None:
        raise UnauthorizedError("Not authenticated, please log in")
    claims = decode_access_token(credentials.credentials)
    user = services.users.find_by_id(claims.get("sub"))
    if user is None:
        raise UnauthorizedError("The user for this token no longer exists")
    if not user.get("is_active", True):
        raise UnauthorizedError("Your account has been deactivated, contact support")
    user["token_role"] = claims.get("role")
    return user


def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    # Both the signed claim and the stored role must say admin.
    if user.get("token_role") != Role.ADMIN.value or user["role"] != Role.ADMIN.value:
        raise ForbiddenError("Admin access required")
    return user
