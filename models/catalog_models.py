from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from models.session_models import (
    OPTION_FORMAT,
    OPTION_IMAGE_INPUT,
    OPTION_RATIO,
    OPTION_RESOLUTION,
    OptionValue,
)

FAMILY_VEO = "veo"
FAMILY_GPT4O_IMAGE = "gpt4o-image"
FAMILY_QWEN_EDIT = "qwen-edit"
FAMILY_JOBS = "jobs"

MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"


def family_for_model_name(name: str) -> str:
    """Infer the request/response dialect from a catalog or provider model id."""
    lowered = (name or "").lower()
    if "veo" in lowered:
        return FAMILY_VEO
    if "gpt-4o" in lowered:
        return FAMILY_GPT4O_IMAGE
    if lowered == "qwen/image-edit":
        return FAMILY_QWEN_EDIT
    return FAMILY_JOBS


class OptionKind(str, Enum):
    """Kinds of draft option a model can declare."""

    CHOICE = "choice"
    IMAGE_LIST = "image_list"


@dataclass
class AIModel:
    """One selectable generation model from the static catalog.

    Attributes:
        id: Catalog identifier used in callbacks and sessions.
        name: Display name shown in menus and captions.
        api_model_id: Identifier sent to the provider API.
        description: Free-form description.
        supported_ops: Option names the model accepts, in display order.
        ratios: Allowed values for `ratio`.
        resolutions: Allowed values for `resolution`.
        formats: Allowed values for `format`.
        media_kind: `image` or `video`, inherited from the provider type.
        family: Request/response dialect, derived from `api_model_id` when absent.
    """

    id: str
    name: str
    api_model_id: str
    description: str = ""
    supported_ops: List[str] = field(default_factory=list)
    ratios: List[str] = field(default_factory=list)
    resolutions: List[str] = field(default_factory=list)
    formats: List[str] = field(default_factory=list)
    media_kind: str = MEDIA_IMAGE
    family: str = ""

    def __post_init__(self) -> None:
        if not self.family:
            self.family = family_for_model_name(self.api_model_id or self.id)

    @property
    def is_video(self) -> bool:
        return self.media_kind == MEDIA_VIDEO or self.family == FAMILY_VEO

    @property
    def is_frame_video(self) -> bool:
        """True for first/last-frame video models, which default to 16:9."""
        return self.family == FAMILY_VEO

    def supports(self, option_name: str) -> bool:
        return option_name in self.supported_ops

    def option_kind(self, option_name: str) -> Optional[OptionKind]:
        """Return the kind of a declared option, or None if undeclared."""
        if not self.supports(option_name):
            return None
        if option_name == OPTION_IMAGE_INPUT:
            return OptionKind.IMAGE_LIST
        return OptionKind.CHOICE

    def choices_for(self, option_name: str) -> List[str]:
        """Enumerated values for a choice option (empty for unknown names)."""
        return {
            OPTION_RATIO: self.ratios,
            OPTION_FORMAT: self.formats,
            OPTION_RESOLUTION: self.resolutions,
        }.get(option_name, [])

    def default_options(self) -> Dict[str, OptionValue]:
        """Draft options applied when this model is (re)selected."""
        ratio = "16:9" if self.is_frame_video else "1:1"
        if self.ratios and ratio not in self.ratios:
            ratio = self.ratios[0]
        defaults: Dict[str, OptionValue] = {
            OPTION_RATIO: ratio,
            OPTION_FORMAT: "png",
            OPTION_IMAGE_INPUT: [],
        }
        if self.supports(OPTION_RESOLUTION):
            defaults[OPTION_RESOLUTION] = "1K"
        return defaults


@dataclass
class Provider:
    """A group of models shown together in the provider menu."""

    id: str
    name: str
    type: str = MEDIA_IMAGE
    models: List[AIModel] = field(default_factory=list)

    @property
    def is_video(self) -> bool:
        return self.type == MEDIA_VIDEO
