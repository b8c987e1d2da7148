import logging
import os
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI

from purchase_flow.api.audits import router as audits_router
from purchase_flow.api.cart import router as cart_router
from purchase_flow.api.transitions import router as transitions_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    # Service singletons are built lazily, so .env only has to be loaded before the first request.
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Purchase Flow Service",
        description="Confirm-then-call lifecycle actions for purchase receipts and a stock-checked POS cart.",
        version="0.1.0",
    )

    @app.get("/health", tags=["health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    app.include_router(transitions_router, prefix="/api")
    app.include_router(cart_router, prefix="/api")
    app.include_router(audits_router, prefix="/api")

    logger.info("Purchase flow service initialised")
    return app


app = create_app()
