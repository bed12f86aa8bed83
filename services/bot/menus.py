"""Inline-keyboard builders for the bot's menus.

Every builder returns `(text, reply_markup)` ready for send/edit calls.
"""

from __future__ import annotations

import html
from typing import Any, Dict, List, Sequence, Tuple

from models.catalog_models import AIModel, Provider
from models.session_models import OPTION_IMAGE_INPUT, Session
from services.localizer import Localizer

Menu = Tuple[str, Dict[str, Any]]

LANGUAGE_LABELS = {"en": "🇺🇸 English", "id": "🇮🇩 Indonesia"}


def _button(text: str, data: str) -> Dict[str, str]:
	return {"text": text, "callback_data": data}


def _rows(buttons: Sequence[Dict[str, str]], per_row: int) -> List[List[Dict[str, str]]]:
	return [list(buttons[i:i + per_row]) for i in range(0, len(buttons), per_row)]


def _keyboard(rows: List[List[Dict[str, str]]]) -> Dict[str, Any]:
	return {"inline_keyboard": rows}


def _title(option_name: str) -> str:
	return option_name.replace("_", " ").title()


def language_menu(loc: Localizer, lang: str) -> Menu:
	languages = loc.languages() or list(LANGUAGE_LABELS)
	buttons = [_button(LANGUAGE_LABELS.get(code, code), f"lang:{code}") for code in languages]
	return loc.get(lang, "menu_lang_title"), _keyboard(_rows(buttons, 2))


def provider_menu(loc: Localizer, lang: str, providers: Sequence[Provider]) -> Menu:
	rows = [[_button(p.name, f"prov:{p.id}")] for p in providers]
	return loc.get(lang, "select_provider"), _keyboard(rows)


def model_menu(loc: Localizer, lang: str, provider: Provider) -> Menu:
	rows = [[_button(m.name, f"model:{m.id}")] for m in provider.models]
	back = "back_home:vids" if provider.is_video else "back_home:img"
	rows.append([_button(loc.get(lang, "btn_back"), back)])
	return loc.get(lang, "provider_msg", provider=html.escape(provider.name)), _keyboard(rows)


def dashboard(loc: Localizer, lang: str, model: AIModel, session: Session) -> Menu:
	"""Render the configuration dashboard for the selected model."""
	lines = [
		loc.get(lang, "dash_model", model=html.escape(model.name)),
		loc.get(lang, "dash_status", status=loc.get(lang, "dash_status_wait")),
		loc.get(lang, "dash_settings"),
		"<pre>",
	]
	buttons = []
	for op in model.supported_ops:
		if op == OPTION_IMAGE_INPUT:
			lines.append(loc.get(lang, "dash_files_count", count=len(session.image_inputs())))
			buttons.append(_button(loc.get(lang, "btn_upload_img"), f"set:{op}"))
		else:
			value = html.escape(session.option(op, "-"))
			lines.append(f"• {_title(op):<10} : {value}")
			buttons.append(_button(loc.get(lang, "btn_set", option=_title(op)), f"set:{op}"))
	lines.append("</pre>")
	lines.append(loc.get(lang, "dash_footer"))

	rows = _rows(buttons, 2)
	rows.append([_button(loc.get(lang, "btn_back_models"), "back_model")])
	return "\n".join(lines), _keyboard(rows)


def option_menu(loc: Localizer, lang: str, model: AIModel, option_name: str) -> Menu:
	buttons = [_button(choice, f"opt:{option_name}:{choice}") for choice in model.choices_for(option_name)]
	rows = _rows(buttons, 3)
	rows.append([_button(loc.get(lang, "btn_back"), f"dash:{model.id}")])
	return loc.get(lang, "select_option", option=_title(option_name)), _keyboard(rows)


def upload_menu(loc: Localizer, lang: str) -> Menu:
	rows = [[_button(loc.get(lang, "btn_done"), "upload_done")]]
	return loc.get(lang, "upload_instruction"), _keyboard(rows)


def empty_keyboard() -> Dict[str, Any]:
	return _keyboard([])
