"""Pydantic models for the subset of Telegram Bot API payloads the bot reads."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramUser(BaseModel):
	model_config = ConfigDict(extra="ignore")

	id: int
	first_name: str = ""
	username: Optional[str] = None
	language_code: Optional[str] = None


class TelegramChat(BaseModel):
	model_config = ConfigDict(extra="ignore")

	id: int
	type: str = "private"


class PhotoSize(BaseModel):
	model_config = ConfigDict(extra="ignore")

	file_id: str
	file_size: Optional[int] = None
	width: int = 0
	height: int = 0


class TelegramMessage(BaseModel):
	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	message_id: int
	from_user: Optional[TelegramUser] = Field(default=None, alias="from")
	chat: TelegramChat
	text: Optional[str] = None
	photo: List[PhotoSize] = Field(default_factory=list)

	def best_photo(self) -> Optional[PhotoSize]:
		"""Telegram lists sizes smallest first; the last is the original."""
		return self.photo[-1] if self.photo else None


class CallbackQuery(BaseModel):
	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	id: str
	from_user: TelegramUser = Field(alias="from")
	message: Optional[TelegramMessage] = None
	data: str = ""


class TelegramUpdate(BaseModel):
	model_config = ConfigDict(extra="ignore")

	update_id: int
	message: Optional[TelegramMessage] = None
	callback_query: Optional[CallbackQuery] = None

	@classmethod
	def parse(cls, payload: Dict[str, Any]) -> "TelegramUpdate":
		return cls.model_validate(payload)
