"""Exception types shared by the session, catalog and job layers."""

from __future__ import annotations


class ValidationError(ValueError):
	"""User-visible, non-fatal rejection that leaves state unchanged.

	`message_key` names the localized notice shown to the user.
	"""

	message_key = "error_generic"


class ImageLimitExceeded(ValidationError):
	message_key = "upload_max_limit"


class WrongConversationMode(ValidationError):
	message_key = "upload_warn_wrong_mode"


class UnknownModel(ValidationError):
	message_key = "error_model_not_found"


class InvalidOptionValue(ValidationError):
	message_key = "option_invalid"


class ProviderError(RuntimeError):
	"""The generation provider rejected or failed a request."""

	def __init__(self, message: str, code: int | None = None) -> None:
		super().__init__(message)
		self.code = code
