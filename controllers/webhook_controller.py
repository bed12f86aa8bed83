"""Webhook intake for Telegram updates."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict

from fastapi import HTTPException, Request
from pydantic import ValidationError as PayloadError

from models.telegram_models import TelegramUpdate
from services.bot.update_poller import UpdatePoller

LOGGER = logging.getLogger(__name__)


async def receive_update(request: Request, secret: str, payload: Dict[str, Any]) -> Dict[str, Any]:
	"""Check the path secret, then hand the update to a background task."""
	expected: str = request.app.state.settings.webhook_secret
	if not expected or not hmac.compare_digest(secret, expected):
		raise HTTPException(status_code=403, detail="Forbidden")

	try:
		update = TelegramUpdate.parse(payload)
	except PayloadError as exc:
		# Telegram retries non-2xx responses; acknowledge and drop.
		LOGGER.warning("Ignoring malformed webhook update: %s", exc)
		return {"ok": True}

	dispatcher: UpdatePoller = request.app.state.update_dispatcher
	dispatcher.spawn(update)
	return {"ok": True}
