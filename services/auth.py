import logging
from datetime import timedelta
from typing import Any, Dict

from database import utc_now
from errors import BadRequestError, ConflictError, MailDeliveryError, NotFoundError, UnauthorizedError
from repositories import UserRepository
from schemas import User
from security import check_password, create_access_token, digest_token, hash_password, new_one_time_token

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(minutes=10)
VERIFICATION_TOKEN_TTL = timedelta(hours=24)


class AuthService:
    def __init__(self, users: UserRepository, mailer, frontend_url: str):
        self.users = users
        self.mailer = mailer
        self.frontend_url = frontend_url.rstrip("/")

    def _issue(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return {"token": create_access_token(str(user["_id"]), user["role"]), "user": user}

    def register(self, name: str, email: str, password: str) -> Dict[str, Any]:
        email = email.strip().lower()
        if self.users.find_by_email(email, include_deleted=True) is not None:
            raise ConflictError("A user with this e-mail already exists")
        raw, digest = new_one_time_token()
        user = self.users.create(User(
            name=name.strip(),
            email=email,
            password=hash_password(password),
            email_verification_token=digest,
            email_verification_expires=utc_now() + VERIFICATION_TOKEN_TTL,
        ))
        try:
            self.mailer.send("email_verification", email, user["name"], f"{self.frontend_url}/verify-email/{raw}")
        except MailDeliveryError:
            self.users.collection.delete_one({"_id": user["_id"]})
            raise
        logger.info("User %s registered", user["_id"])
        return self._issue(user)

    def login(self, email: str, password: str) -> Dict[str, Any]:
        user = self.users.find_by_email(email)
        if user is None or not check_password(password, user.get("password", "")):
            raise UnauthorizedError("Incorrect e-mail or password")
        if not user.get("is_active", True):
            raise UnauthorizedError("Your account has been deactivated, contact support")
        return self._issue(user)

    def forgot_password(self, email: str) -> None:
        user = self.users.find_by_email(email)
        if user is None:
            raise NotFoundError("User", email.strip().lower())
        raw, digest = new_one_time_token()
        self.users.update(user["_id"], {
            "password_reset_token": digest,
            "password_reset_expires": utc_now() + RESET_TOKEN_TTL,
        })
        try:
            self.mailer.send("password_reset", user["email"], user["name"], f"{self.frontend_url}/reset-password/{raw}")
        except MailDeliveryError:
            self.users.update(user["_id"], {"password_reset_token": None, "password_reset_expires": None})
            raise

    def _user_for_reset(self, token: str) -> Dict[str, Any]:
        user = self.users.find_by_reset_token(digest_token(token))
        if user is None:
            raise BadRequestError("Invalid or expired token")
        return user

    def check_reset_token(self, token: str) -> None:
        self._user_for_reset(token)

    def reset_password(self, token: str, password: str, password_confirm: str) -> Dict[str, Any]:
        if password != password_confirm:
            raise BadRequestError("Passwords do not match")
        user = self._user_for_reset(token)
        user = self.users.update(user["_id"], {
            "password": hash_password(password),
            "password_reset_token": None,
            "password_reset_expires": None,
        })
        logger.info("Password reset for user %s", user["_id"])
        return self._issue(user)

    def verify_email(self, token: str) -> None:
        user = self.users.find_by_verification_token(digest_token(token))
        if user is None:
            raise BadRequestError("Invalid or expired token")
        self.users.update(user["_id"], {
            "email_verified": True,
            "email_verification_token": None,
            "email_verification_expires": None,
        })

    def resend_verification(self, email: str) -> None:
        user = self.users.find_by_email(email)
        if user is None:
            raise NotFoundError("User", email.strip().lower())
        if user.get("email_verified"):
            raise BadRequestError("E-mail already verified")
        raw, digest = new_one_time_token()
        self.users.update(user["_id"], {
            "email_verification_token": digest,
            "email_verification_expires": utc_now() + VERIFICATION_TOKEN_TTL,
        })
        self.mailer.send("email_verification", user["email"], user["name"], f"{self.frontend_url}/verify-email/{raw}")
