"""Environment-based configuration for the Order/Inventory clients."""

from __future__ import annotations

import logging
import os
from typing import Optional

from purchase_flow.models.cart import DEFAULT_TAX_RATE

DEFAULT_API_BASE_URL = "http://localhost:9090/api/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0


class ConfigService:
    """Read settings from the process environment.

    ``.env`` files are loaded once by the application entry point
    (python-dotenv); this class only looks at ``os.environ`` so tests can
    drive it with ``monkeypatch.setenv``.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    # -----------------
    # Public accessors
    # -----------------
    def get_api_base_url(self) -> str:
        return os.getenv("ORDER_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/")

    def get_api_token(self) -> Optional[str]:
        return os.getenv("ORDER_API_TOKEN") or None

    def get_timeout(self) -> float:
        return self._read_float("ORDER_API_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)

    def get_audit_db_path(self) -> Optional[str]:
        return os.getenv("AUDIT_DB_PATH") or None

    def get_cart_tax_rate(self) -> float:
        return self._read_float("CART_TAX_RATE", DEFAULT_TAX_RATE)

    # -----------------
    # Internal helpers
    # -----------------
    def _read_float(self, name: str, default: float) -> float:
        raw = os.getenv(name)
        if raw is None or raw.strip() == "":
            return default
        try:
            return float(raw)
        except ValueError:
            self._logger.warning(
                "Ignoring non-numeric setting; using default",
                extra={"setting": name, "value": raw, "default": default},
            )
            return default
