"""Job and canonical status models for the generation lifecycle."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from models.session_models import OptionValue


class JobState(str, Enum):
	"""Canonical upstream job status."""

	WAITING = "waiting"
	SUCCESS = "success"
	FAIL = "fail"


class JobOutcome(str, Enum):
	"""How a tracked job left the registry."""

	DELIVERED = "delivered"
	EMPTY_RESULT = "empty_result"
	FAILED = "failed"
	START_FAILED = "start_failed"
	TIMED_OUT = "timed_out"
	CANCELLED = "cancelled"


@dataclass(frozen=True)
class NormalizedStatus:
	"""Canonical triple produced from any upstream status dialect."""

	state: JobState
	result_payload: str = ""
	failure_message: str = ""

	def result_urls(self) -> List[str]:
		"""Decode result URLs from the serialized payload.

		Accepts `{"resultUrls": [...]}` documents or a bare list; anything
		unparseable yields an empty list.
		"""
		if not self.result_payload:
			return []
		try:
			document = json.loads(self.result_payload)
		except (TypeError, ValueError):
			return []
		if isinstance(document, dict):
			document = document.get("resultUrls") or []
		if not isinstance(document, list):
			return []
		return [url for url in document if isinstance(url, str) and url]

	def first_result_url(self) -> Optional[str]:
		urls = self.result_urls()
		return urls[0] if urls else None


@dataclass
class Job:
	"""Control block for one in-flight generation request."""

	user_id: int
	chat_id: int
	model_id: str
	prompt: str
	options_snapshot: Dict[str, OptionValue]
	language: str
	status_message_id: Optional[int] = None
	task_id: Optional[str] = None
	cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
	task: Optional["asyncio.Task[JobOutcome]"] = None
	outcome: Optional[JobOutcome] = None

	@property
	def cancelled(self) -> bool:
		return self.cancel_event.is_set()

	def cancel(self) -> None:
		self.cancel_event.set()
