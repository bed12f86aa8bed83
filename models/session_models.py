"""Session domain models for the per-user conversation flow."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Union

IMAGE_INPUT_LIMIT = 8

OPTION_RATIO = "ratio"
OPTION_FORMAT = "format"
OPTION_RESOLUTION = "resolution"
OPTION_IMAGE_INPUT = "image_input"

OptionValue = Union[str, List[str]]


class ConversationState(str, Enum):
	"""Persisted states that change how inbound events are interpreted."""

	IDLE = "IDLE"
	AWAITING_PROMPT = "AWAITING_PROMPT"
	AWAITING_IMAGE_UPLOAD = "AWAITING_IMAGE_UPLOAD"

	@classmethod
	def parse(cls, raw: str | None) -> "ConversationState":
		"""Map a stored value to a state, treating unknown values as IDLE."""
		try:
			return cls(raw or cls.IDLE.value)
		except ValueError:
			return cls.IDLE


@dataclass
class Session:
	"""Snapshot of one user's conversational state and draft options."""

	user_id: int
	state: ConversationState = ConversationState.IDLE
	selected_model: str = ""
	draft_options: Dict[str, OptionValue] = field(default_factory=dict)
	language: str = "en"

	def image_inputs(self) -> List[str]:
		"""Return uploaded reference image URLs, tolerating malformed rows."""
		value = self.draft_options.get(OPTION_IMAGE_INPUT)
		if isinstance(value, list):
			return [item for item in value if isinstance(item, str)]
		return []

	def option(self, name: str, default: str = "") -> str:
		"""Return a string option, or `default` when missing or not a string."""
		value = self.draft_options.get(name)
		return value if isinstance(value, str) else default

	def snapshot_options(self) -> Dict[str, OptionValue]:
		"""Deep copy of the draft options, insulated from later edits."""
		return copy.deepcopy(self.draft_options)
