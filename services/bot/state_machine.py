"""Interpret inbound chat events against each user's persisted session."""

from __future__ import annotations

import logging
from typing import Optional

from dal.session_dal import SessionDAL
from models.catalog_models import AIModel, OptionKind
from models.errors import (
	ImageLimitExceeded,
	InvalidOptionValue,
	UnknownModel,
	ValidationError,
	WrongConversationMode,
)
from models.session_models import IMAGE_INPUT_LIMIT, OPTION_IMAGE_INPUT, ConversationState, Session
from models.telegram_models import CallbackQuery, TelegramMessage, TelegramUpdate
from services.bot import menus
from services.jobs.job_manager import JobManager
from services.localizer import Localizer
from services.model_catalog import ModelCatalog
from services.telegram.telegram_client import TelegramClient

LOGGER = logging.getLogger(__name__)


class SessionStateMachine:
	"""Route commands, button presses, photos and free text for one bot."""

	def __init__(
		self,
		store: SessionDAL,
		jobs: JobManager,
		catalog: ModelCatalog,
		localizer: Localizer,
		transport: TelegramClient,
	) -> None:
		self.store = store
		self.jobs = jobs
		self.catalog = catalog
		self.localizer = localizer
		self.transport = transport

	async def dispatch(self, update: TelegramUpdate) -> None:
		"""Process a single inbound update; failures are logged, never raised."""
		try:
			if update.callback_query is not None:
				await self.handle_callback(update.callback_query)
			elif update.message is not None:
				await self.handle_message(update.message)
		except Exception:
			LOGGER.exception("Failed to handle update %s", update.update_id)

	async def handle_message(self, message: TelegramMessage) -> None:
		if message.from_user is None:
			return
		chat_id = message.chat.id
		user_id = message.from_user.id

		text = (message.text or "").strip()
		if text:
			if text.startswith("/") and await self.handle_command(chat_id, user_id, text):
				return
			await self.handle_free_text(chat_id, user_id, text)

		photo = message.best_photo()
		if photo is not None:
			await self.handle_image_uploaded(chat_id, user_id, photo.file_id)

	async def handle_command(self, chat_id: int, user_id: int, text: str) -> bool:
		"""Handle a slash command; returns False for commands the bot does not know."""
		command = text.split()[0].split("@", 1)[0].lower()
		lang = await self.store.get_language(user_id)

		if command == "/start":
			await self.store.reset_session(user_id)
			await self.transport.send_text(chat_id, self._t(lang, "welcome"))
		elif command == "/cancel":
			await self.store.set_state(user_id, ConversationState.IDLE, "")
			had_job = await self.jobs.cancel(user_id)
			LOGGER.debug("User %s cancel (active job: %s)", user_id, had_job)
			await self.transport.send_text(chat_id, self._t(lang, "cancel_success"))
		elif command == "/lang":
			await self._show(chat_id, None, menus.language_menu(self.localizer, lang))
		elif command in ("/img", "/vids"):
			providers = self.catalog.providers(video=command == "/vids")
			await self._show(chat_id, None, menus.provider_menu(self.localizer, lang, providers))
		else:
			return False
		return True

	async def handle_model_selected(self, chat_id: int, user_id: int, message_id: Optional[int], model_id: str) -> None:
		lang = await self.store.get_language(user_id)
		model = self.catalog.model_by_id(model_id)
		if model is None:
			await self._reject(chat_id, lang, UnknownModel(model_id))
			return
		session = await self.store.select_model(user_id, model.id, model.default_options())
		await self._show(chat_id, message_id, menus.dashboard(self.localizer, lang, model, session))

	async def handle_option_edit(
		self,
		chat_id: int,
		user_id: int,
		message_id: Optional[int],
		option_name: str,
		value: str,
	) -> None:
		"""Overwrite one choice option after checking the model's declared choices."""
		session = await self.store.get_session(user_id)
		try:
			model = self._selected_model(session)
			if model.option_kind(option_name) is not OptionKind.CHOICE or value not in model.choices_for(option_name):
				raise InvalidOptionValue(f"{option_name}={value!r} not allowed for {model.id}")
		except ValidationError as exc:
			await self._reject(chat_id, session.language, exc)
			return

		await self.store.update_draft_option(user_id, option_name, value)
		session = await self.store.get_session(user_id)
		await self._show(chat_id, message_id, menus.dashboard(self.localizer, session.language, model, session))

	async def handle_enter_image_upload_mode(self, chat_id: int, user_id: int, message_id: Optional[int]) -> None:
		session = await self.store.get_session(user_id)
		try:
			model = self._selected_model(session)
			if model.option_kind(OPTION_IMAGE_INPUT) is not OptionKind.IMAGE_LIST:
				raise InvalidOptionValue(f"{model.id} does not accept reference images")
		except ValidationError as exc:
			await self._reject(chat_id, session.language, exc)
			return

		await self.store.set_state(user_id, ConversationState.AWAITING_IMAGE_UPLOAD, model.id)
		await self._show(chat_id, message_id, menus.upload_menu(self.localizer, session.language))

	async def handle_image_uploaded(self, chat_id: int, user_id: int, file_id: str) -> None:
		"""Append an uploaded photo to the draft; ignored outside upload mode."""
		session = await self.store.get_session(user_id)
		if session.state is not ConversationState.AWAITING_IMAGE_UPLOAD:
			return
		lang = session.language

		if len(session.image_inputs()) >= IMAGE_INPUT_LIMIT:
			await self._reject(chat_id, lang, ImageLimitExceeded())
			return

		try:
			file_url = await self.transport.resolve_file_url(file_id)
		except Exception as exc:
			LOGGER.error("Error getting file URL for %s: %s", file_id, exc)
			await self.transport.send_text(chat_id, self._t(lang, "upload_fail_url"))
			return

		try:
			count = await self.store.append_image_input(user_id, file_url)
		except ImageLimitExceeded as exc:
			await self._reject(chat_id, lang, exc)
			return
		await self.transport.send_text(chat_id, self._t(lang, "upload_received", count=count, limit=IMAGE_INPUT_LIMIT))

	async def handle_exit_image_upload_mode(self, chat_id: int, user_id: int, message_id: Optional[int]) -> None:
		session = await self.store.get_session(user_id)
		try:
			model = self._selected_model(session)
		except ValidationError as exc:
			await self._reject(chat_id, session.language, exc)
			return
		await self.store.set_state(user_id, ConversationState.AWAITING_PROMPT, model.id)
		session.state = ConversationState.AWAITING_PROMPT
		await self._show(chat_id, message_id, menus.dashboard(self.localizer, session.language, model, session))

	async def handle_free_text(self, chat_id: int, user_id: int, text: str) -> None:
		"""Treat text as a prompt when a model is ready, otherwise explain what to do."""
		session = await self.store.get_session(user_id)
		lang = session.language

		if session.state is ConversationState.AWAITING_IMAGE_UPLOAD:
			await self._reject(chat_id, lang, WrongConversationMode())
			return
		if session.state is not ConversationState.AWAITING_PROMPT or not session.selected_model:
			await self.transport.send_text(chat_id, self._t(lang, "start_hint"))
			return

		try:
			model = self._selected_model(session)
		except ValidationError as exc:
			await self._reject(chat_id, lang, exc)
			return
		await self.jobs.submit(
			user_id=user_id,
			chat_id=chat_id,
			prompt=text,
			model_id=model.id,
			options=session.snapshot_options(),
			language=lang,
		)

	async def handle_callback(self, callback: CallbackQuery) -> None:
		"""Route an inline-button press by its `action:arg[:arg]` payload."""
		await self.transport.answer_callback(callback.id)
		if callback.message is None:
			return

		chat_id = callback.message.chat.id
		message_id = callback.message.message_id
		user_id = callback.from_user.id
		parts = callback.data.split(":", 2)
		action = parts[0]
		arg = parts[1] if len(parts) > 1 else ""
		lang = await self.store.get_language(user_id)

		if action == "lang" and arg:
			if not self.localizer.has_language(arg):
				return
			await self.store.set_language(user_id, arg)
			await self.transport.edit_text_with_menu(
				chat_id, message_id, self._t(arg, "menu_lang_success"), menus.empty_keyboard()
			)
		elif action == "prov" and arg:
			provider = self.catalog.provider_by_id(arg)
			if provider is not None:
				await self._show(chat_id, message_id, menus.model_menu(self.localizer, lang, provider))
		elif action == "model" and arg:
			await self.handle_model_selected(chat_id, user_id, message_id, arg)
		elif action == "dash" and arg:
			await self._return_to_dashboard(chat_id, user_id, message_id, arg)
		elif action == "set" and arg:
			await self._show_option_choices(chat_id, user_id, message_id, arg)
		elif action == "opt" and len(parts) == 3:
			await self.handle_option_edit(chat_id, user_id, message_id, arg, parts[2])
		elif action == "upload_done":
			await self.handle_exit_image_upload_mode(chat_id, user_id, message_id)
		elif action == "back_home":
			providers = self.catalog.providers(video=arg == "vids")
			await self._show(chat_id, message_id, menus.provider_menu(self.localizer, lang, providers))
		elif action == "back_model":
			await self._back_to_models(chat_id, user_id, message_id, lang)
		else:
			LOGGER.debug("Ignoring callback %r from user %s", callback.data, user_id)

	async def _return_to_dashboard(self, chat_id: int, user_id: int, message_id: int, model_id: str) -> None:
		session = await self.store.get_session(user_id)
		model = self.catalog.model_by_id(model_id)
		if model is None or model.id != session.selected_model:
			await self._reject(chat_id, session.language, UnknownModel(model_id))
			return
		await self.store.set_state(user_id, ConversationState.AWAITING_PROMPT, model.id)
		session.state = ConversationState.AWAITING_PROMPT
		await self._show(chat_id, message_id, menus.dashboard(self.localizer, session.language, model, session))

	async def _show_option_choices(self, chat_id: int, user_id: int, message_id: int, option_name: str) -> None:
		if option_name == OPTION_IMAGE_INPUT:
			await self.handle_enter_image_upload_mode(chat_id, user_id, message_id)
			return
		session = await self.store.get_session(user_id)
		try:
			model = self._selected_model(session)
			if model.option_kind(option_name) is not OptionKind.CHOICE:
				raise InvalidOptionValue(f"{model.id} has no option {option_name!r}")
		except ValidationError as exc:
			await self._reject(chat_id, session.language, exc)
			return
		await self._show(chat_id, message_id, menus.option_menu(self.localizer, session.language, model, option_name))

	async def _back_to_models(self, chat_id: int, user_id: int, message_id: int, lang: str) -> None:
		session = await self.store.get_session(user_id)
		provider = self.catalog.provider_for_model(session.selected_model) if session.selected_model else None
		if provider is not None:
			await self._show(chat_id, message_id, menus.model_menu(self.localizer, lang, provider))
		else:
			providers = self.catalog.providers(video=False)
			await self._show(chat_id, message_id, menus.provider_menu(self.localizer, lang, providers))

	def _selected_model(self, session: Session) -> AIModel:
		model = self.catalog.model_by_id(session.selected_model) if session.selected_model else None
		if model is None:
			raise UnknownModel(f"Unknown model {session.selected_model!r}")
		return model

	async def _show(self, chat_id: int, message_id: Optional[int], menu: menus.Menu) -> None:
		text, keyboard = menu
		if message_id is None:
			await self.transport.send_text_with_menu(chat_id, text, keyboard)
		else:
			await self.transport.edit_text_with_menu(chat_id, message_id, text, keyboard)

	async def _reject(self, chat_id: int, lang: str, exc: ValidationError) -> None:
		LOGGER.info("Rejected for chat %s: %s", chat_id, exc.message_key)
		await self.transport.send_text(chat_id, self._t(lang, exc.message_key))

	def _t(self, lang: str, key: str, **fields: object) -> str:
		return self.localizer.get(lang, key, **fields)
