"""Static provider/model catalog loaded from `models.json`."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles

from models.catalog_models import MEDIA_IMAGE, AIModel, Provider

LOGGER = logging.getLogger(__name__)


class ModelCatalog:
    """Lookup helpers over the providers and models declared in the catalog file."""

    def __init__(self, providers: Optional[List[Provider]] = None) -> None:
        self._providers: List[Provider] = list(providers or [])
        self._models: Dict[str, AIModel] = {}
        self._provider_of: Dict[str, Provider] = {}
        for provider in self._providers:
            for model in provider.models:
                self._models[model.id] = model
                self._provider_of[model.id] = provider

    @classmethod
    async def load(cls, path: Path | str) -> "ModelCatalog":
        """Read and parse a catalog file.

        Raises:
            RuntimeError: If the file is missing or not valid catalog JSON.
        """
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as fh:
                raw = await fh.read()
        except OSError as exc:
            raise RuntimeError(f"Failed to read models file {path}") from exc

        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise RuntimeError(f"Failed to parse models file {path}") from exc

        catalog = cls.from_dicts(data)
        LOGGER.info("Loaded %d providers / %d models from %s", len(catalog.providers()), len(catalog._models), path)
        return catalog

    @classmethod
    def from_dicts(cls, data: List[Dict[str, Any]]) -> "ModelCatalog":
        if not isinstance(data, list):
            raise RuntimeError("Models file must contain a list of providers")
        providers = []
        for entry in data:
            media_kind = entry.get("type") or MEDIA_IMAGE
            models = [
                AIModel(
                    id=m["id"],
                    name=m.get("name") or m["id"],
                    api_model_id=m.get("api_model_id") or m["id"],
                    description=m.get("description", ""),
                    supported_ops=list(m.get("supported_ops") or []),
                    ratios=list(m.get("ratios") or []),
                    resolutions=list(m.get("resolutions") or []),
                    formats=list(m.get("formats") or []),
                    media_kind=media_kind,
                    family=m.get("family", ""),
                )
                for m in entry.get("models") or []
            ]
            providers.append(
                Provider(id=entry["id"], name=entry.get("name") or entry["id"], type=media_kind, models=models)
            )
        return cls(providers)

    def providers(self, video: Optional[bool] = None) -> List[Provider]:
        """All providers, or only video (True) / image (False) providers."""
        if video is None:
            return list(self._providers)
        return [p for p in self._providers if p.is_video == video]

    def provider_by_id(self, provider_id: str) -> Optional[Provider]:
        return next((p for p in self._providers if p.id == provider_id), None)

    def model_by_id(self, model_id: str) -> Optional[AIModel]:
        return self._models.get(model_id)

    def provider_for_model(self, model_id: str) -> Optional[Provider]:
        return self._provider_of.get(model_id)
