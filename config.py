"""
Runtime configuration for the Storefront API.

Values come from the environment (a local .env file is honoured) so the same
build runs in development, CI and production.
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60)))

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_CURRENCY = os.getenv("STRIPE_CURRENCY", "usd")
STRIPE_TIMEOUT_SECONDS = int(os.getenv("STRIPE_TIMEOUT_SECONDS", "5"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
BACKEND_ORIGIN = os.getenv("BACKEND_ORIGIN", "http://localhost:8000")

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

RESEND_API_KEY = os.getenv("RESEND_API_KEY")
MAIL_FROM = os.getenv("MAIL_FROM", "Storefront <no-reply@storefront.local>")

# Cancelling an order does not give stock back unless this is switched on.
RESTORE_STOCK_ON_CANCEL = _flag("RESTORE_STOCK_ON_CANCEL")

PAYMENT_WORKER_ENABLED = _flag("PAYMENT_WORKER_ENABLED", "true")
PAYMENT_WORKER_INTERVAL = float(os.getenv("PAYMENT_WORKER_INTERVAL", "2"))
PAYMENT_WORKER_MAX_ATTEMPTS = int(os.getenv("PAYMENT_WORKER_MAX_ATTEMPTS", "8"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
