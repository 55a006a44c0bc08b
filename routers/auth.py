from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import EmailStr, Field, model_validator

from dependencies import Services, get_services
from routers.common import Payload, ok
from schemas import ApiResponse, AuthOut

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(Payload):
    name: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8)
    password_confirm: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password_confirm is not None and self.password_confirm != self.password:
            raise ValueError("Passwords do not match")
        return self


class LoginRequest(Payload):
    email: EmailStr
    password: str = Field(..., min_length=1)


class EmailRequest(Payload):
    email: EmailStr


class ResetPasswordRequest(Payload):
    password: str = Field(..., min_length=8)
    password_confirm: str


@router.post("/register", status_code=201, response_model=ApiResponse[AuthOut])
def register(payload: RegisterRequest, services: Services = Depends(get_services)):
    result = services.auth.register(payload.name, payload.email, payload.password)
    return ok(result, "Registration successful, please verify your e-mail")


@router.post("/login", response_model=ApiResponse[AuthOut])
def login(payload: LoginRequest, services: Services = Depends(get_services)):
    return ok(services.auth.login(payload.email, payload.password))


@router.get("/logout", response_model=ApiResponse)
def logout():
    # Tokens are stateless; the client drops its copy.
    return ok(message="Logged out")


@router.post("/forgot-password", response_model=ApiResponse)
def forgot_password(payload: EmailRequest, services: Services = Depends(get_services)):
    services.auth.forgot_password(payload.email)
    return ok(message="Password reset instructions sent by e-mail")


@router.get("/reset-password/{token}", response_model=ApiResponse)
def check_reset_token(token: str, services: Services = Depends(get_services)):
    services.auth.check_reset_token(token)
    return ok(message="Token is valid")


@router.patch("/reset-password/{token}", response_model=ApiResponse[AuthOut])
def reset_password(token: str, payload: ResetPasswordRequest, services: Services = Depends(get_services)):
    result = services.auth.reset_password(token, payload.password, payload.password_confirm)
    return ok(result, "Password updated")


@router.get("/verify-email/{token}", response_model=ApiResponse)
def verify_email(token: str, services: Services = Depends(get_services)):
    services.auth.verify_email(token)
    return ok(message="E-mail verified")


@router.post("/resend-verification", response_model=ApiResponse)
def resend_verification(payload: EmailRequest, services: Services = Depends(get_services)):
    services.auth.resend_verification(payload.email)
    return ok(message="Verification e-mail sent")
