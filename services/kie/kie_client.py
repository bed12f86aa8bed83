"""Kie.ai generation API client.

Processing flow:
    1. Shape a create-task request for the model family (Veo, GPT-4o image,
       Qwen image edit, or the generic jobs endpoint).
    2. Submit it and return the provider task id.
    3. Fetch the raw record-info payload for a task id; routing differs per
       model family. Status interpretation lives in `status_normalizer`.

Error handling strategy:
    - HTTP status != 200 or an API `code` != 200 raises `ProviderError`.
    - Transport failures propagate as `httpx.HTTPError` for the caller's
      retry policy.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from models.catalog_models import (
    FAMILY_GPT4O_IMAGE,
    FAMILY_QWEN_EDIT,
    FAMILY_VEO,
    family_for_model_name,
)
from models.errors import ProviderError
from models.session_models import (
    OPTION_FORMAT,
    OPTION_IMAGE_INPUT,
    OPTION_RATIO,
    OPTION_RESOLUTION,
    OptionValue,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.kie.ai/api/v1"

QWEN_IMAGE_SIZES = ("square", "square_hd", "portrait_4_3", "portrait_16_9", "landscape_4_3", "landscape_16_9")
QWEN_DEFAULT_SIZE = "landscape_4_3"
QWEN_RATIO_ALIASES = {
    "1:1": "square",
    "3:4": "portrait_4_3",
    "9:16": "portrait_16_9",
    "4:3": "landscape_4_3",
    "16:9": "landscape_16_9",
}


def _string_option(options: Mapping[str, OptionValue], key: str, default: str) -> str:
    value = options.get(key)
    return value if isinstance(value, str) and value else default


def _list_option(options: Mapping[str, OptionValue], key: str) -> List[str]:
    value = options.get(key)
    if isinstance(value, list):
        return [item for item in value if isinstance(item, str)]
    return []


def qwen_image_size(ratio: Optional[OptionValue]) -> str:
    """Map a draft ratio onto one of Qwen's named image sizes."""
    if isinstance(ratio, str):
        if ratio in QWEN_IMAGE_SIZES:
            return ratio
        if ratio in QWEN_RATIO_ALIASES:
            return QWEN_RATIO_ALIASES[ratio]
    return QWEN_DEFAULT_SIZE


def build_create_request(
    prompt: str,
    model_name: str,
    options: Mapping[str, OptionValue],
    family: str = "",
) -> Tuple[str, Dict[str, Any]]:
    """Return `(path, json_body)` for a create-task call.

    `family` is the catalog's request dialect; when empty it is inferred
    from `model_name`.

    Raises:
        ProviderError: If the model needs inputs the options do not provide.
    """
    family = family or family_for_model_name(model_name)
    images = _list_option(options, OPTION_IMAGE_INPUT)

    if family == FAMILY_VEO:
        body: Dict[str, Any] = {
            "model": model_name,
            "prompt": prompt,
            "aspectRatio": _string_option(options, OPTION_RATIO, "16:9"),
        }
        if images:
            body["imageUrls"] = images
            body["generationType"] = "FIRST_AND_LAST_FRAMES_2_VIDEO"
        else:
            body["generationType"] = "TEXT_2_VIDEO"
        return "/veo/generate", body

    if family == FAMILY_GPT4O_IMAGE:
        body = {"prompt": prompt, "size": _string_option(options, OPTION_RATIO, "1:1")}
        if images:
            body["filesUrl"] = images
        return "/gpt4o-image/generate", body

    if family == FAMILY_QWEN_EDIT:
        if not images:
            raise ProviderError("This model requires at least one uploaded image")
        model_input: Dict[str, Any] = {
            "prompt": prompt,
            "image_url": images[-1],
            "image_size": qwen_image_size(options.get(OPTION_RATIO)),
            "output_format": _string_option(options, OPTION_FORMAT, "png"),
            "acceleration": "none",
            "num_inference_steps": 25,
            "guidance_scale": 4,
            "enable_safety_checker": True,
            "negative_prompt": "blurry, ugly",
        }
        return "/jobs/createTask", {"model": model_name, "input": model_input}

    model_input = {"prompt": prompt}
    if model_name == "google/nano-banana":
        model_input["output_format"] = _string_option(options, OPTION_FORMAT, "png")
        model_input["image_size"] = _string_option(options, OPTION_RATIO, "1:1")
    elif model_name == "nano-banana-pro":
        model_input["output_format"] = _string_option(options, OPTION_FORMAT, "png")
        model_input["aspect_ratio"] = _string_option(options, OPTION_RATIO, "1:1")
        model_input["resolution"] = _string_option(options, OPTION_RESOLUTION, "1K")
        model_input["image_input"] = images
    elif model_name == "google/nano-banana-edit":
        model_input["output_format"] = _string_option(options, OPTION_FORMAT, "png")
        model_input["image_size"] = _string_option(options, OPTION_RATIO, "1:1")
        model_input["image_urls"] = images
    else:
        model_input["output_format"] = "png"
    return "/jobs/createTask", {"model": model_name, "input": model_input}


def status_route(task_id: str, model_id: str, family: str = "") -> Tuple[str, Dict[str, str]]:
    """Return `(path, query_params)` of the record-info endpoint for a model."""
    family = family or family_for_model_name(model_id)
    if family == FAMILY_VEO:
        path = "/veo/record-info"
    elif family == FAMILY_GPT4O_IMAGE:
        path = "/gpt4o-image/record-info"
    else:
        path = "/jobs/recordInfo"
    return path, {"taskId": task_id}


class KieClient:
    """Async HTTP client for task creation and status queries."""

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ) -> None:
        if not api_key:
            raise ValueError("Kie API key is required.")
        self._client = http_client or httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)
        self._headers = {"Authorization": f"Bearer {api_key}"}

    async def submit_job(
        self,
        prompt: str,
        provider_model_id: str,
        options: Mapping[str, OptionValue],
        family: str = "",
    ) -> str:
        """Create a generation task and return its task id."""
        path, body = build_create_request(prompt, provider_model_id, options, family)
        response = await self._client.post(path, json=body, headers=self._headers)

        if response.status_code != 200:
            LOGGER.error("Kie API error status %s | body: %s", response.status_code, response.text)
            raise ProviderError(f"API error status {response.status_code}", code=response.status_code)

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(f"API parse error: {response.text[:500]}") from exc

        code = payload.get("code") if isinstance(payload, dict) else None
        if code != 200:
            message = payload.get("msg", "") if isinstance(payload, dict) else ""
            raise ProviderError(f"API error {code}: {message}", code=code)

        task_id = (payload.get("data") or {}).get("taskId")
        if not task_id:
            raise ProviderError("API did not return a task id")
        LOGGER.info("Submitted %s task %s", provider_model_id, task_id)
        return str(task_id)

    async def query_job_status(self, task_id: str, model_id: str, family: str = "") -> Dict[str, Any]:
        """Return the raw record-info payload for `task_id`."""
        path, params = status_route(task_id, model_id, family)
        response = await self._client.get(path, params=params, headers=self._headers)
        if response.status_code != 200:
            raise ProviderError(f"polling error {response.status_code}", code=response.status_code)
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()
