"""Translation lookup backed by `locales/<lang>.json` files."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List

import aiofiles

LOGGER = logging.getLogger(__name__)


class Localizer:
    """Resolve message keys for a language, falling back to the default language."""

    def __init__(self, translations: Dict[str, Dict[str, str]], default_lang: str = "en") -> None:
        self._translations = translations
        self.default_lang = default_lang

    @classmethod
    async def load(cls, locales_dir: Path | str, default_lang: str = "en") -> "Localizer":
        """Load every `*.json` file in `locales_dir`; unreadable files are skipped."""
        translations: Dict[str, Dict[str, str]] = {}
        for path in sorted(Path(locales_dir).glob("*.json")):
            try:
                async with aiofiles.open(path, "r", encoding="utf-8") as fh:
                    data = json.loads(await fh.read())
            except (OSError, ValueError) as exc:
                LOGGER.error("Error loading locale file %s: %s", path, exc)
                continue
            if not isinstance(data, dict):
                LOGGER.error("Locale file %s is not a JSON object", path)
                continue
            translations[path.stem] = {str(k): str(v) for k, v in data.items()}
            LOGGER.info("Loaded language: %s", path.stem)
        return cls(translations, default_lang)

    def languages(self) -> List[str]:
        return sorted(self._translations)

    def has_language(self, lang: str) -> bool:
        return lang in self._translations

    def get(self, lang: str, key: str, **fields: object) -> str:
        """Return the translated text for `key`, formatted with `fields`.

        Unknown keys resolve to the key itself so a missing translation is
        visible rather than fatal.
        """
        template = None
        for candidate in (lang or self.default_lang, self.default_lang):
            template = self._translations.get(candidate, {}).get(key)
            if template is not None:
                break
        if template is None:
            return key
        if not fields:
            return template
        try:
            return template.format(**fields)
        except (KeyError, IndexError, ValueError):
            LOGGER.warning("Bad placeholders in %s/%s", lang, key)
            return template
