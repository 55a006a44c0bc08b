import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database import ensure_indexes, get_database, utc_now
from dependencies import Services, build_services
from errors import AppError
from routers import admin, auth, cart, categories, orders, payments, products, reviews, users

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, errors=None) -> JSONResponse:
    content = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


def _validation_messages(exc) -> list:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return messages


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message, exc.errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, "Validation failed", _validation_messages(exc))

    @app.exception_handler(ValidationError)
    async def model_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, "Validation failed", _validation_messages(exc))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError) -> JSONResponse:
        return _error(409, "A record with the same unique value already exists")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")


def create_app(services: Optional[Services] = None) -> FastAPI:
    if services is None:
        db = get_database()
        services = build_services(db) if db is not None else None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        svc = app.state.services
        if svc is not None:
            try:
                ensure_indexes(svc.db)
            except PyMongoError as e:
                logger.error("Could not create indexes: %s", e)
            if config.PAYMENT_WORKER_ENABLED:
                svc.worker.start()
        else:
            logger.warning("DATABASE_URL / DATABASE_NAME not set, API routes are unavailable")
        yield
        if svc is not None:
            svc.worker.stop()

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    for module in (auth, users, categories, products, cart, orders, payments, reviews, admin):
        app.include_router(module.router, prefix="/api")

    @app.get("/")
    def read_root():
        return {"message": "Storefront backend running"}

    @app.get("/api/health")
    def health():
        return {"success": True, "message": "API running", "timestamp": utc_now().isoformat()}

    @app.get("/test")
    def test_database():
        svc = app.state.services
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
            "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": [],
            "stripe": "✅ Configured" if config.STRIPE_SECRET_KEY else "⚠️ Missing STRIPE_SECRET_KEY",
        }

        try:
            if svc is not None:
                response["database"] = "✅ Connected"
                collections = svc.db.list_collection_names()
                response["collections"] = collections[:10]
                response["connection_status"] = "Connected"
        except PyMongoError as e:
            response["database"] = f"⚠️ Error: {str(e)[:80]}"

        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
