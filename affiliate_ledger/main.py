from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from affiliate_ledger.api.endpoints import affiliates as affiliates_api
from affiliate_ledger.api.endpoints import commissions as commissions_api
from affiliate_ledger.api.endpoints import payouts as payouts_api
from affiliate_ledger.api.endpoints import tracking as tracking_api
from affiliate_ledger.api.exception_handlers import register_exception_handlers
from affiliate_ledger.core.config import LOG_LEVEL, PAYOUT_SCHEDULER_ENABLED
from affiliate_ledger.db.base import Base
from affiliate_ledger.db.session import engine
from affiliate_ledger.jobs.scheduler import start_scheduler, shutdown_scheduler

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables on startup (no migrations yet)
    Base.metadata.create_all(bind=engine)
    if PAYOUT_SCHEDULER_ENABLED:
        start_scheduler()
    else:
        logger.info("Payout scheduler disabled")
    yield
    shutdown_scheduler()

app = FastAPI(title="Affiliate Ledger API", version="0.1.0", lifespan=lifespan)

register_exception_handlers(app)

# Include API routers
app.include_router(tracking_api.router, prefix="/api/v1/track", tags=["Tracking"])
app.include_router(affiliates_api.router, prefix="/api/v1/affiliates", tags=["Affiliates"])
app.include_router(commissions_api.router, prefix="/api/v1/commissions", tags=["Commissions"])
app.include_router(payouts_api.router, prefix="/api/v1/payouts", tags=["Payouts"])

@app.get("/ping", tags=["Health Check"])
async def ping():
    return {"message": "pong"}
