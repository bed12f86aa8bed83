"""Telegram Bot API transport used for inbound updates and outbound messages."""

from __future__ import annotations

import html
import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

LOGGER = logging.getLogger(__name__)

API_ROOT = "https://api.telegram.org"


class TelegramClient:
	"""Thin async wrapper over the Bot API methods the bot needs.

	Outbound helpers log and swallow delivery failures; callers only get a
	message id or a success flag back. `get_updates` and `resolve_file_url`
	raise so the caller can back off or notify.
	"""

	def __init__(
		self,
		token: str,
		http_client: Optional[httpx.AsyncClient] = None,
		api_root: str = API_ROOT,
	) -> None:
		if not token:
			raise ValueError("Telegram bot token is required.")
		self._token = token
		self._api_url = f"{api_root}/bot{token}"
		self._file_url = f"{api_root}/file/bot{token}"
		self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=15.0))

	async def get_updates(self, offset: int, timeout: int = 50) -> List[Dict[str, Any]]:
		"""Long-poll for updates starting at `offset`."""
		response = await self._client.get(
			f"{self._api_url}/getUpdates",
			params={"offset": offset, "timeout": timeout},
			timeout=timeout + 15,
		)
		response.raise_for_status()
		payload = response.json()
		if not payload.get("ok"):
			raise RuntimeError(f"getUpdates failed: {payload}")
		return payload.get("result") or []

	async def resolve_file_url(self, file_id: str) -> str:
		"""Turn a file id into a direct download URL the provider can fetch."""
		response = await self._client.get(f"{self._api_url}/getFile", params={"file_id": file_id})
		response.raise_for_status()
		file_path = ((response.json() or {}).get("result") or {}).get("file_path")
		if not file_path:
			raise RuntimeError(f"Telegram returned no file_path for {file_id}")
		return f"{self._file_url}/{file_path}"

	async def send_text(self, chat_id: int, text: str) -> Optional[int]:
		"""Send an HTML message and return its message id when delivered."""
		result = await self._call("sendMessage", {"chat_id": chat_id, "text": text, "parse_mode": "HTML"})
		if isinstance(result, dict):
			return result.get("message_id")
		return None

	async def send_text_with_menu(self, chat_id: int, text: str, keyboard: Dict[str, Any]) -> Optional[int]:
		result = await self._call(
			"sendMessage",
			{"chat_id": chat_id, "text": text, "parse_mode": "HTML", "reply_markup": keyboard},
		)
		if isinstance(result, dict):
			return result.get("message_id")
		return None

	async def edit_text_with_menu(self, chat_id: int, message_id: int, text: str, keyboard: Dict[str, Any]) -> bool:
		result = await self._call(
			"editMessageText",
			{
				"chat_id": chat_id,
				"message_id": message_id,
				"text": text,
				"parse_mode": "HTML",
				"reply_markup": keyboard,
			},
		)
		return result is not None

	async def delete_message(self, chat_id: int, message_id: int) -> bool:
		return await self._call("deleteMessage", {"chat_id": chat_id, "message_id": message_id}) is not None

	async def send_activity_signal(self, chat_id: int, action: str) -> bool:
		return await self._call("sendChatAction", {"chat_id": chat_id, "action": action}) is not None

	async def answer_callback(self, callback_query_id: str) -> bool:
		return await self._call("answerCallbackQuery", {"callback_query_id": callback_query_id}) is not None

	async def deliver_image(self, chat_id: int, url: str, caption: str) -> bool:
		"""Upload the image at `url`; fall back to letting Telegram fetch it."""
		content = await self._download(url)
		if content is not None:
			ok = await self._upload("sendPhoto", "photo", chat_id, content, _filename(url, "image.png"), caption)
			if ok:
				return True
		sent = await self._call(
			"sendPhoto", {"chat_id": chat_id, "photo": url, "caption": caption, "parse_mode": "HTML"}
		)
		if sent is not None:
			return True
		await self.send_text(chat_id, _link_message(caption, url, "Download image"))
		return False

	async def deliver_video(self, chat_id: int, url: str, caption: str) -> bool:
		"""Upload the video at `url`, then try by link, then send a download link."""
		await self.send_activity_signal(chat_id, "upload_video")
		content = await self._download(url, timeout=120.0)
		if content is not None:
			ok = await self._upload(
				"sendVideo",
				"video",
				chat_id,
				content,
				_filename(url, "video.mp4"),
				caption,
				extra={"supports_streaming": "true"},
			)
			if ok:
				return True
		sent = await self._call(
			"sendVideo", {"chat_id": chat_id, "video": url, "caption": caption, "parse_mode": "HTML"}
		)
		if sent is not None:
			LOGGER.info("Video delivered by link to chat %s", chat_id)
			return True
		await self.send_text(chat_id, _link_message(caption, url, "Download video"))
		return False

	async def aclose(self) -> None:
		await self._client.aclose()

	async def _download(self, url: str, timeout: float = 60.0) -> Optional[bytes]:
		try:
			response = await self._client.get(url, timeout=timeout, follow_redirects=True)
		except httpx.HTTPError as exc:
			LOGGER.error("Asset download failed for %s: %s", url, exc)
			return None
		if response.status_code != 200:
			LOGGER.error("Asset server returned %s for %s", response.status_code, url)
			return None
		return response.content

	async def _upload(
		self,
		method: str,
		field: str,
		chat_id: int,
		content: bytes,
		filename: str,
		caption: str,
		extra: Optional[Dict[str, str]] = None,
	) -> bool:
		data = {"chat_id": str(chat_id), "caption": caption, "parse_mode": "HTML"}
		data.update(extra or {})
		try:
			response = await self._client.post(
				f"{self._api_url}/{method}",
				data=data,
				files={field: (filename, content)},
				timeout=120.0,
			)
		except httpx.HTTPError as exc:
			LOGGER.error("Telegram %s upload error: %s", method, exc)
			return False
		if response.status_code != 200:
			LOGGER.error("Telegram rejected %s upload: %s", method, response.text[:1000])
			return False
		return True

	async def _call(self, method: str, payload: Dict[str, Any]) -> Optional[Any]:
		"""POST a JSON Bot API call; return `result`, or None on any failure."""
		try:
			response = await self._client.post(f"{self._api_url}/{method}", json=payload)
		except httpx.HTTPError as exc:
			LOGGER.error("Telegram %s network error: %s", method, exc)
			return None
		try:
			body = response.json()
		except json.JSONDecodeError:
			body = {}
		if response.status_code != 200 or not body.get("ok"):
			LOGGER.warning("Telegram %s failed (%s): %s", method, response.status_code, response.text[:500])
			return None
		return body.get("result", True)


def _filename(url: str, fallback: str) -> str:
	name = urlparse(url).path.rsplit("/", 1)[-1]
	return name if "." in name else fallback


def _link_message(caption: str, url: str, label: str) -> str:
	return f'{caption}\n\n<a href="{html.escape(url, quote=True)}">{label}</a>'
