from __future__ import annotations

import json
from itertools import count
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytest

from models.session_models import OptionValue
from services.localizer import Localizer
from services.model_catalog import ModelCatalog

CATALOG_DATA: List[Dict[str, Any]] = [
    {
        "id": "google",
        "name": "Google",
        "type": "image",
        "models": [
            {
                "id": "nano-banana",
                "name": "Nano Banana",
                "api_model_id": "google/nano-banana",
                "supported_ops": ["ratio", "format"],
                "ratios": ["1:1", "9:16", "16:9"],
                "formats": ["png", "jpeg"],
            },
            {
                "id": "nano-banana-pro",
                "name": "Nano Banana Pro",
                "api_model_id": "nano-banana-pro",
                "supported_ops": ["ratio", "resolution", "format", "image_input"],
                "ratios": ["1:1", "9:16", "16:9"],
                "resolutions": ["1K", "2K", "4K"],
                "formats": ["png", "jpg"],
            },
        ],
    },
    {
        "id": "veo",
        "name": "Google Veo",
        "type": "video",
        "models": [
            {
                "id": "veo3_fast",
                "name": "Veo 3 Fast",
                "api_model_id": "veo3_fast",
                "supported_ops": ["ratio", "image_input"],
                "ratios": ["16:9", "9:16"],
            }
        ],
    },
]

# Templates echo their key so assertions can match on it.
TRANSLATIONS = {
    "en": {
        "gen_start": "gen_start {model}",
        "gen_caption": "gen_caption {model} | {ratio} | {prompt}",
        "gen_fail": "gen_fail {message}",
        "upload_received": "upload_received {count}",
        "menu_lang_success": "menu_lang_success en",
    },
    "id": {
        "menu_lang_success": "menu_lang_success id",
    },
}


class RecordingTransport:
    """In-memory chat transport that records every outbound call in order."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, tuple]] = []
        self.file_urls: Dict[str, str] = {}
        self.fail_file_lookup = False
        self._ids = count(100)

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def texts(self) -> List[str]:
        return [args[1] for name, args in self.calls if name == "send_text"]

    async def send_text(self, chat_id: int, text: str) -> Optional[int]:
        self.calls.append(("send_text", (chat_id, text)))
        return next(self._ids)

    async def send_text_with_menu(self, chat_id: int, text: str, keyboard: Dict[str, Any]) -> Optional[int]:
        self.calls.append(("send_text_with_menu", (chat_id, text, keyboard)))
        return next(self._ids)

    async def edit_text_with_menu(self, chat_id: int, message_id: int, text: str, keyboard: Dict[str, Any]) -> bool:
        self.calls.append(("edit_text_with_menu", (chat_id, message_id, text, keyboard)))
        return True

    async def delete_message(self, chat_id: int, message_id: int) -> bool:
        self.calls.append(("delete_message", (chat_id, message_id)))
        return True

    async def send_activity_signal(self, chat_id: int, action: str) -> bool:
        self.calls.append(("send_activity_signal", (chat_id, action)))
        return True

    async def answer_callback(self, callback_query_id: str) -> bool:
        self.calls.append(("answer_callback", (callback_query_id,)))
        return True

    async def deliver_image(self, chat_id: int, url: str, caption: str) -> bool:
        self.calls.append(("deliver_image", (chat_id, url, caption)))
        return True

    async def deliver_video(self, chat_id: int, url: str, caption: str) -> bool:
        self.calls.append(("deliver_video", (chat_id, url, caption)))
        return True

    async def resolve_file_url(self, file_id: str) -> str:
        self.calls.append(("resolve_file_url", (file_id,)))
        if self.fail_file_lookup:
            raise RuntimeError("getFile failed")
        return self.file_urls.get(file_id, f"https://files.test/{file_id}.jpg")


class ScriptedProvider:
    """Generation provider stub replaying a fixed list of status payloads.

    Once the script is exhausted every further poll reports `waiting`.
    Entries that are exceptions are raised instead of returned.
    """

    def __init__(self, statuses: Optional[List[Any]] = None, submit_error: Optional[Exception] = None) -> None:
        self.statuses = list(statuses or [])
        self.submit_error = submit_error
        self.submitted: List[Tuple[str, str, Dict[str, OptionValue]]] = []
        self.queries: List[Tuple[str, str]] = []
        self.families: List[str] = []

    async def submit_job(
        self, prompt: str, provider_model_id: str, options: Mapping[str, OptionValue], family: str = ""
    ) -> str:
        self.submitted.append((prompt, provider_model_id, dict(options)))
        self.families.append(family)
        if self.submit_error is not None:
            raise self.submit_error
        return f"task-{len(self.submitted)}"

    async def query_job_status(self, task_id: str, model_id: str, family: str = "") -> Dict[str, Any]:
        self.queries.append((task_id, model_id))
        self.families.append(family)
        if not self.statuses:
            return {"code": 200, "data": {"state": "waiting"}}
        status = self.statuses.pop(0)
        if isinstance(status, Exception):
            raise status
        return status


def waiting() -> Dict[str, Any]:
    return {"code": 200, "data": {"state": "waiting"}}


def success(*urls: str) -> Dict[str, Any]:
    return {"code": 200, "data": {"state": "success", "resultJson": json.dumps({"resultUrls": list(urls)})}}


@pytest.fixture
def catalog() -> ModelCatalog:
    return ModelCatalog.from_dicts(CATALOG_DATA)


@pytest.fixture
def localizer() -> Localizer:
    return Localizer({lang: dict(keys) for lang, keys in TRANSLATIONS.items()}, "en")


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
