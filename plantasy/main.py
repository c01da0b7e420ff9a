from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from plantasy.api.routes_addresses import router as addresses_router
from plantasy.api.routes_cart import router as cart_router
from plantasy.api.routes_checkout import router as checkout_router
from plantasy.api.routes_orders import admin_router as admin_orders_router
from plantasy.api.routes_orders import router as orders_router
from plantasy.api.routes_razorpay import router as razorpay_router
from plantasy.api.routes_session import router as session_router
from plantasy.checkout.orchestrator import AttemptNotFoundError
from plantasy.core.config import get_settings
from plantasy.core.logging import configure_logging
from plantasy.core.security import AuthenticationRequired
from plantasy.domain.orders import InvalidStatusTransition
from plantasy.persistence.documents import DocumentNotFoundError
from plantasy.persistence.pg import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=f"{settings.app_name} Checkout")


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("plantasy started: env=%s razorpay_mode=%s proxy_mode=%s", settings.env, settings.razorpay_mode, settings.payment_proxy_mode)


@app.exception_handler(DocumentNotFoundError)
async def document_not_found_handler(_: Request, exc: DocumentNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AttemptNotFoundError)
async def attempt_not_found_handler(_: Request, exc: AttemptNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidStatusTransition)
async def invalid_transition_handler(_: Request, exc: InvalidStatusTransition):
    return JSONResponse(
        status_code=409,
        content={
            "detail": str(exc),
            "error": "invalid_status_transition",
        },
    )


@app.exception_handler(AuthenticationRequired)
async def authentication_required_handler(_: Request, exc: AuthenticationRequired):
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(session_router)
app.include_router(cart_router)
app.include_router(addresses_router)
app.include_router(checkout_router)
app.include_router(orders_router)
app.include_router(admin_orders_router)
app.include_router(razorpay_router)
