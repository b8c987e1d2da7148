"""Lightweight JSON logging utilities for lifecycle instrumentation."""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path(__file__).resolve().parents[2] / "artifacts" / "logs"
LOG_FILENAME = "transitions.log"
SENSITIVE_KEYS = {"api_token", "authorization", "password", "token"}


def _log_file() -> Path:
	log_dir = os.getenv("TRANSITION_LOG_DIR")
	return (Path(log_dir) if log_dir else DEFAULT_LOG_DIR) / LOG_FILENAME


def log_transition_event(event: Dict[str, Any]) -> None:
	"""Persist a structured lifecycle event without leaking credentials."""

	payload = {
		"timestamp": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
	}
	for key, value in event.items():
		if key is None:
			continue
		normalized = str(key)
		if normalized.lower() in SENSITIVE_KEYS:
			continue
		payload[normalized] = value

	log_file = _log_file()
	try:
		log_file.parent.mkdir(parents=True, exist_ok=True)
		with log_file.open("a", encoding="utf-8") as handle:
			json.dump(payload, handle, ensure_ascii=False, default=str)
			handle.write("\n")
	except Exception as exc:  # pragma: no cover - logging must never break the flow
		logger.debug("Failed to write transition log: %s", exc, exc_info=True)


def log_cart_event(event: Dict[str, Any]) -> None:
	"""Record cart mutations and rejections."""

	payload = {"event_type": "cart"}
	payload.update(event)
	log_transition_event(payload)
