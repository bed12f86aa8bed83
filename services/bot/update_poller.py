"""Long-polling loop that feeds Telegram updates to the state machine."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Protocol, Set

from pydantic import ValidationError as PayloadError

from models.telegram_models import TelegramUpdate
from services.bot.state_machine import SessionStateMachine

LOGGER = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 5.0


class UpdateSource(Protocol):
	async def get_updates(self, offset: int, timeout: int = 50) -> List[Dict[str, Any]]: ...


class UpdatePoller:
	"""Pull updates with getUpdates and handle each one on its own task."""

	def __init__(
		self,
		source: UpdateSource,
		state_machine: SessionStateMachine,
		long_poll_timeout: int = 50,
		error_backoff: float = ERROR_BACKOFF_SECONDS,
	) -> None:
		self.source = source
		self.state_machine = state_machine
		self.long_poll_timeout = long_poll_timeout
		self.error_backoff = error_backoff
		self.offset = 0
		self._tasks: Set[asyncio.Task] = set()

	async def poll_once(self) -> int:
		"""Fetch one batch, schedule a handler per update and return the batch size."""
		raw_updates = await self.source.get_updates(self.offset, self.long_poll_timeout)
		for raw in raw_updates:
			update_id = raw.get("update_id")
			if isinstance(update_id, int):
				self.offset = max(self.offset, update_id + 1)
			try:
				update = TelegramUpdate.parse(raw)
			except PayloadError as exc:
				LOGGER.warning("Skipping malformed update %s: %s", update_id, exc)
				continue
			self.spawn(update)
		return len(raw_updates)

	def spawn(self, update: TelegramUpdate) -> asyncio.Task:
		task = asyncio.create_task(self.state_machine.dispatch(update), name=f"update-{update.update_id}")
		self._tasks.add(task)
		task.add_done_callback(self._tasks.discard)
		return task

	async def run(self) -> None:
		"""Poll until cancelled, backing off after errors."""
		LOGGER.info("Bot is running in long-polling mode")
		while True:
			try:
				await self.poll_once()
			except asyncio.CancelledError:
				break
			except Exception as exc:
				LOGGER.error("Error getting updates: %s", exc)
				try:
					await asyncio.sleep(self.error_backoff)
				except asyncio.CancelledError:
					break

	async def drain(self) -> None:
		"""Wait for in-flight update handlers to finish."""
		if self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)
