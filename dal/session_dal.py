"""Async Data Access Layer for per-user session rows.

Provides SessionDAL with async read/write operations on the `users` and
`user_states` tables created by `utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from models.errors import ImageLimitExceeded
from models.session_models import (
    IMAGE_INPUT_LIMIT,
    OPTION_IMAGE_INPUT,
    ConversationState,
    OptionValue,
    Session,
)
from utils.database_init import AsyncDatabaseInitializer

LOGGER = logging.getLogger(__name__)


class SessionDAL:
    """Data access layer for Session rows.

    Every read-modify-write of a session (draft option edits, image appends,
    state changes) runs under one `asyncio.Lock`, so concurrent event tasks
    never lose each other's updates.
    """

    def __init__(self, db_initializer: AsyncDatabaseInitializer, default_language: str = "en") -> None:
        self._db = db_initializer
        self.default_language = default_language
        self._lock = asyncio.Lock()

    async def get_session(self, user_id: int) -> Session:
        """Return the stored session, or a fresh IDLE session if none exists."""
        async with self._db.connection() as conn:
            row = await self._fetch_state_row(conn, user_id)
            language = await self._fetch_language(conn, user_id)

        if row is None:
            return Session(user_id=user_id, language=language)
        return Session(
            user_id=user_id,
            state=ConversationState.parse(row[0]),
            selected_model=row[1] or "",
            draft_options=self._decode_options(row[2]),
            language=language,
        )

    async def get_language(self, user_id: int) -> str:
        async with self._db.connection() as conn:
            return await self._fetch_language(conn, user_id)

    async def set_language(self, user_id: int, language_code: str) -> None:
        async with self._lock:
            async with self._db.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO users (user_id, language_code) VALUES (?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET language_code = excluded.language_code
                    """,
                    (user_id, language_code),
                )
                await conn.commit()

    async def set_state(self, user_id: int, state: ConversationState, selected_model: str) -> None:
        """Persist the conversation state and selected model, keeping draft options.

        Raises:
            ValueError: If `state` is AWAITING_PROMPT without a selected model.
        """
        self._check_invariant(state, selected_model)
        async with self._lock:
            async with self._db.connection() as conn:
                await conn.execute(
                    """
                    INSERT INTO user_states (user_id, state, selected_model) VALUES (?, ?, ?)
                    ON CONFLICT(user_id) DO UPDATE SET
                        state = excluded.state,
                        selected_model = excluded.selected_model
                    """,
                    (user_id, state.value, selected_model),
                )
                await conn.commit()

    async def select_model(self, user_id: int, model_id: str, defaults: Dict[str, OptionValue]) -> Session:
        """Switch to `model_id`, enter AWAITING_PROMPT and replace all draft options."""
        self._check_invariant(ConversationState.AWAITING_PROMPT, model_id)
        async with self._lock:
            async with self._db.connection() as conn:
                await self._write_row(conn, user_id, ConversationState.AWAITING_PROMPT, model_id, defaults)
                language = await self._fetch_language(conn, user_id)
        return Session(
            user_id=user_id,
            state=ConversationState.AWAITING_PROMPT,
            selected_model=model_id,
            draft_options=dict(defaults),
            language=language,
        )

    async def reset_session(self, user_id: int) -> None:
        """Back to IDLE with no model and no draft options."""
        async with self._lock:
            async with self._db.connection() as conn:
                await self._write_row(conn, user_id, ConversationState.IDLE, "", {})

    async def update_draft_option(self, user_id: int, key: str, value: OptionValue) -> Dict[str, OptionValue]:
        """Set one draft option and return the full updated option map."""
        async with self._lock:
            async with self._db.connection() as conn:
                options = await self._read_options(conn, user_id)
                options[key] = value
                await self._write_options(conn, user_id, options)
                return options

    async def append_image_input(self, user_id: int, url: str, limit: int = IMAGE_INPUT_LIMIT) -> int:
        """Append a reference image URL and return the new list length.

        Raises:
            ImageLimitExceeded: If the list already holds `limit` entries.
        """
        async with self._lock:
            async with self._db.connection() as conn:
                options = await self._read_options(conn, user_id)
                images = self._image_list(options.get(OPTION_IMAGE_INPUT))
                if len(images) >= limit:
                    raise ImageLimitExceeded(f"Image input limit of {limit} reached")
                images.append(url)
                options[OPTION_IMAGE_INPUT] = images
                await self._write_options(conn, user_id, options)
                return len(images)

    @staticmethod
    def _check_invariant(state: ConversationState, selected_model: str) -> None:
        if state is ConversationState.AWAITING_PROMPT and not selected_model:
            raise ValueError("AWAITING_PROMPT requires a selected model")

    @staticmethod
    def _image_list(value: Any) -> List[str]:
        if isinstance(value, list):
            return [item for item in value if isinstance(item, str)]
        return []

    @staticmethod
    def _decode_options(raw: Optional[str]) -> Dict[str, OptionValue]:
        if not raw:
            return {}
        try:
            options = json.loads(raw)
        except ValueError:
            LOGGER.warning("Discarding unreadable draft options: %r", raw)
            return {}
        return options if isinstance(options, dict) else {}

    async def _fetch_state_row(self, conn, user_id: int):
        cur = await conn.execute(
            "SELECT state, selected_model, draft_options FROM user_states WHERE user_id = ?",
            (user_id,),
        )
        return await cur.fetchone()

    async def _fetch_language(self, conn, user_id: int) -> str:
        cur = await conn.execute("SELECT language_code FROM users WHERE user_id = ?", (user_id,))
        row = await cur.fetchone()
        return row[0] if row and row[0] else self.default_language

    async def _read_options(self, conn, user_id: int) -> Dict[str, OptionValue]:
        row = await self._fetch_state_row(conn, user_id)
        return self._decode_options(row[2]) if row else {}

    async def _write_options(self, conn, user_id: int, options: Dict[str, OptionValue]) -> None:
        await conn.execute(
            """
            INSERT INTO user_states (user_id, draft_options) VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET draft_options = excluded.draft_options
            """,
            (user_id, json.dumps(options)),
        )
        await conn.commit()

    async def _write_row(
        self,
        conn,
        user_id: int,
        state: ConversationState,
        selected_model: str,
        options: Dict[str, OptionValue],
    ) -> None:
        await conn.execute(
            """
            INSERT INTO user_states (user_id, state, selected_model, draft_options) VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                state = excluded.state,
                selected_model = excluded.selected_model,
                draft_options = excluded.draft_options
            """,
            (user_id, state.value, selected_model, json.dumps(options)),
        )
        await conn.commit()
