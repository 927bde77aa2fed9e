"""
Maps affiliate domain errors raised by the service layer onto HTTP responses.

Register on the app via `register_exception_handlers(app)`.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from affiliate_ledger.core.errors import (
    AffiliateError,
    AffiliateNotFound,
    CommissionSaleNotFound,
    PayoutNotFound,
    InvalidStateTransition,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    AffiliateNotFound: 404,
    CommissionSaleNotFound: 404,
    PayoutNotFound: 404,
    InvalidStateTransition: 409,
}

async def affiliate_error_handler(request: Request, exc: AffiliateError):
    status_code = next(
        (code for error_cls, code in STATUS_CODES.items() if isinstance(exc, error_cls)),
        400,
    )
    logger.info(f"{request.method} {request.url.path} rejected with {status_code}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})

def register_exception_handlers(app):
    app.add_exception_handler(AffiliateError, affiliate_error_handler)
