"""Translate Kie.ai job-status payloads into a canonical waiting/success/fail result.

The record-info endpoints speak several dialects: newer ones report a textual
`state`, others a `status` that may be a string or a number, and the oldest a
`successFlag`. Result URLs live under `response.resultUrls`, `info.resultUrls`
or arrive as an already-serialized `resultJson` document.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from models.job_models import JobState, NormalizedStatus

SUCCESS_KEYWORDS = frozenset({"success", "finished", "done", "complete"})
WAITING_KEYWORDS = frozenset({"waiting", "pending", "generating", "queued", "queue", "processing"})


@dataclass(frozen=True)
class RawStatus:
	"""Fields of interest pulled out of any status dialect."""

	state: str = ""
	status: Union[str, int, float, None] = None
	success_flag: Optional[int] = None
	response_urls: List[str] = field(default_factory=list)
	info_urls: List[str] = field(default_factory=list)
	result_json: str = ""
	error_message: str = ""
	fail_msg: str = ""

	@classmethod
	def from_payload(cls, payload: Any) -> "RawStatus":
		"""Parse either the `{"code", "data"}` envelope or a bare data object.

		Anything that is not a JSON object yields an empty RawStatus, which
		normalizes to `fail`.
		"""
		if not isinstance(payload, dict):
			return cls()
		data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
		return cls(
			state=_as_text(data.get("state")),
			status=_as_status(data.get("status")),
			success_flag=_as_flag(data.get("successFlag")),
			response_urls=_urls_under(data.get("response")),
			info_urls=_urls_under(data.get("info")),
			result_json=_as_text(data.get("resultJson")),
			error_message=_as_text(data.get("errorMessage")),
			fail_msg=_as_text(data.get("failMsg")),
		)


def _as_text(value: Any) -> str:
	return value if isinstance(value, str) else ""


def _as_status(value: Any) -> Union[str, int, float, None]:
	if isinstance(value, bool):
		return None
	if isinstance(value, (str, int, float)):
		return value
	return None


def _as_flag(value: Any) -> Optional[int]:
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return None
	return int(value) if float(value).is_integer() else None


def _urls_under(container: Any) -> List[str]:
	if not isinstance(container, dict):
		return []
	urls = container.get("resultUrls")
	if not isinstance(urls, list):
		return []
	return [url for url in urls if isinstance(url, str) and url]


def _keyword_state(text: str) -> Optional[JobState]:
	lowered = text.strip().lower()
	if lowered in SUCCESS_KEYWORDS:
		return JobState.SUCCESS
	if lowered in WAITING_KEYWORDS:
		return JobState.WAITING
	return None


def resolve_state(raw: RawStatus) -> JobState:
	"""Apply the textual-state, generic-status, legacy-flag order; default fail."""
	resolved = _keyword_state(raw.state)
	if resolved is not None:
		return resolved

	if isinstance(raw.status, str):
		resolved = _keyword_state(raw.status)
		if resolved is not None:
			return resolved
	elif isinstance(raw.status, (int, float)):
		if raw.status == 1:
			return JobState.SUCCESS
		if raw.status == 0:
			return JobState.WAITING
		return JobState.FAIL

	if raw.success_flag == 1:
		return JobState.SUCCESS
	if raw.success_flag == 0:
		return JobState.WAITING
	return JobState.FAIL


def _result_payload(raw: RawStatus) -> str:
	if raw.response_urls:
		return json.dumps({"resultUrls": raw.response_urls})
	if raw.info_urls:
		return json.dumps({"resultUrls": raw.info_urls})
	if raw.result_json:
		return raw.result_json
	return "{}"


def _failure_message(raw: RawStatus) -> str:
	for message in (raw.error_message, raw.fail_msg):
		if message.strip():
			return message
	token = raw.state or (str(raw.status) if raw.status not in (None, "") else "") or "empty"
	return f"Unknown error / flag failed (raw state: {token})"


def normalize_status(payload: Union[Dict[str, Any], RawStatus, Any]) -> NormalizedStatus:
	"""Return the canonical status for a raw record-info payload."""
	raw = payload if isinstance(payload, RawStatus) else RawStatus.from_payload(payload)
	state = resolve_state(raw)
	if state is JobState.SUCCESS:
		return NormalizedStatus(state=state, result_payload=_result_payload(raw))
	if state is JobState.WAITING:
		return NormalizedStatus(state=state)
	return NormalizedStatus(state=state, failure_message=_failure_message(raw))
