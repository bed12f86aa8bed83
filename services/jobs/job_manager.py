"""Drive generation jobs from submission to a terminal outcome.

Each submitted job runs on its own asyncio task: submit to the provider,
poll its status every tick, normalize the payload, then deliver the result
or a failure notice. The registry holds at most one live job per user;
submitting again cancels the previous job before the new one is registered.
"""

from __future__ import annotations

import asyncio
import copy
import html
import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from models.catalog_models import AIModel
from models.errors import UnknownModel
from models.job_models import Job, JobOutcome, JobState, NormalizedStatus
from models.session_models import OPTION_RATIO, OptionValue
from services.kie.status_normalizer import normalize_status
from services.localizer import Localizer
from services.model_catalog import ModelCatalog

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 3.0
VIDEO_TIMEOUT_SECONDS = 5 * 60.0
IMAGE_TIMEOUT_SECONDS = 3 * 60.0
CAPTION_PROMPT_LIMIT = 300
VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm", ".mkv")


class GenerationProvider(Protocol):
	async def submit_job(
		self, prompt: str, provider_model_id: str, options: Mapping[str, OptionValue], family: str = ""
	) -> str: ...

	async def query_job_status(self, task_id: str, model_id: str, family: str = "") -> Dict[str, Any]: ...


class ChatTransport(Protocol):
	async def send_text(self, chat_id: int, text: str) -> Optional[int]: ...

	async def delete_message(self, chat_id: int, message_id: int) -> bool: ...

	async def send_activity_signal(self, chat_id: int, action: str) -> bool: ...

	async def deliver_image(self, chat_id: int, url: str, caption: str) -> bool: ...

	async def deliver_video(self, chat_id: int, url: str, caption: str) -> bool: ...


def truncate_prompt(prompt: str, limit: int = CAPTION_PROMPT_LIMIT) -> str:
	return prompt if len(prompt) <= limit else prompt[:limit] + "..."


def is_video_url(url: str) -> bool:
	path = url.lower().split("?", 1)[0]
	return path.endswith(VIDEO_EXTENSIONS)


class JobManager:
	"""Own the live job registry and the per-job polling loops."""

	def __init__(
		self,
		provider: GenerationProvider,
		transport: ChatTransport,
		catalog: ModelCatalog,
		localizer: Localizer,
		*,
		poll_interval: float = POLL_INTERVAL_SECONDS,
		video_timeout: float = VIDEO_TIMEOUT_SECONDS,
		image_timeout: float = IMAGE_TIMEOUT_SECONDS,
	) -> None:
		self.provider = provider
		self.transport = transport
		self.catalog = catalog
		self.localizer = localizer
		self.poll_interval = poll_interval
		self.video_timeout = video_timeout
		self.image_timeout = image_timeout
		self._jobs: Dict[int, Job] = {}
		self._lock = asyncio.Lock()

	async def submit(
		self,
		*,
		user_id: int,
		chat_id: int,
		prompt: str,
		model_id: str,
		options: Mapping[str, OptionValue],
		language: str,
	) -> Job:
		"""Announce, register and start a job; returns once its task is scheduled.

		Raises:
			UnknownModel: If `model_id` is not in the catalog.
		"""
		model = self.catalog.model_by_id(model_id)
		if model is None:
			raise UnknownModel(f"Unknown model {model_id!r}")

		loop = asyncio.get_running_loop()
		timeout = self.video_timeout if model.is_video else self.image_timeout
		deadline = loop.time() + timeout

		job = Job(
			user_id=user_id,
			chat_id=chat_id,
			model_id=model.id,
			prompt=prompt,
			options_snapshot=copy.deepcopy(dict(options)),
			language=language,
		)
		await self._register(job)
		job.status_message_id = await self._send(job, "gen_start", model=html.escape(model.name))
		job.task = asyncio.create_task(self._run(job, model, deadline), name=f"job-{user_id}")
		return job

	async def cancel(self, user_id: int) -> bool:
		"""Signal the user's job to stop; returns False when none was registered."""
		async with self._lock:
			job = self._jobs.pop(user_id, None)
		if job is None:
			return False
		job.cancel()
		LOGGER.info("Cancelled job for user %s (task %s)", user_id, job.task_id)
		return True

	def active_job(self, user_id: int) -> Optional[Job]:
		return self._jobs.get(user_id)

	async def shutdown(self) -> None:
		"""Stop every polling loop; used on process exit."""
		async with self._lock:
			jobs = list(self._jobs.values())
			self._jobs.clear()
		tasks = []
		for job in jobs:
			job.cancel()
			if job.task is not None:
				job.task.cancel()
				tasks.append(job.task)
		if tasks:
			await asyncio.gather(*tasks, return_exceptions=True)

	async def _register(self, job: Job) -> None:
		async with self._lock:
			previous = self._jobs.get(job.user_id)
			self._jobs[job.user_id] = job
		if previous is not None:
			LOGGER.info("User %s resubmitted; cancelling task %s", job.user_id, previous.task_id)
			previous.cancel()

	async def _release(self, job: Job) -> None:
		async with self._lock:
			if self._jobs.get(job.user_id) is job:
				del self._jobs[job.user_id]

	async def _run(self, job: Job, model: AIModel, deadline: float) -> JobOutcome:
		outcome = JobOutcome.FAILED
		try:
			outcome = await self._drive(job, model, deadline)
		except Exception:
			LOGGER.exception("Job for user %s crashed", job.user_id)
			await self._clear_notice(job)
		finally:
			await self._release(job)
			job.outcome = outcome
		LOGGER.info("Job for user %s finished: %s", job.user_id, outcome.value)
		return outcome

	async def _drive(self, job: Job, model: AIModel, deadline: float) -> JobOutcome:
		if job.cancelled:
			await self._clear_notice(job)
			return JobOutcome.CANCELLED
		try:
			job.task_id = await self.provider.submit_job(
				job.prompt, model.api_model_id, job.options_snapshot, model.family
			)
		except Exception as exc:
			LOGGER.error("Submit failed for user %s on %s: %s", job.user_id, model.api_model_id, exc)
			await self._clear_notice(job)
			if job.cancelled:
				return JobOutcome.CANCELLED
			await self._send(job, "gen_fail_start")
			return JobOutcome.START_FAILED
		return await self._poll(job, model, deadline)

	async def _poll(self, job: Job, model: AIModel, deadline: float) -> JobOutcome:
		loop = asyncio.get_running_loop()
		action = "upload_video" if model.is_video else "upload_photo"

		while True:
			remaining = deadline - loop.time()
			if remaining <= 0:
				return await self._time_out(job)
			try:
				await asyncio.wait_for(job.cancel_event.wait(), timeout=min(self.poll_interval, remaining))
			except asyncio.TimeoutError:
				pass
			else:
				await self._clear_notice(job)
				return JobOutcome.CANCELLED
			if loop.time() >= deadline:
				return await self._time_out(job)

			try:
				await self.transport.send_activity_signal(job.chat_id, action)
			except Exception as exc:
				LOGGER.debug("Activity signal failed for chat %s: %s", job.chat_id, exc)

			try:
				payload = await self.provider.query_job_status(job.task_id, model.id, model.family)
			except Exception as exc:
				LOGGER.warning("Poll error for task %s: %s", job.task_id, exc)
				continue

			if job.cancelled:
				await self._clear_notice(job)
				return JobOutcome.CANCELLED

			status = normalize_status(payload)
			if status.state is JobState.WAITING:
				continue
			if status.state is JobState.SUCCESS:
				return await self._deliver(job, model, status)

			await self._clear_notice(job)
			await self._send(job, "gen_fail", message=html.escape(status.failure_message))
			return JobOutcome.FAILED

	async def _deliver(self, job: Job, model: AIModel, status: NormalizedStatus) -> JobOutcome:
		url = status.first_result_url()
		await self._clear_notice(job)
		if not url:
			await self._send(job, "gen_result_empty")
			return JobOutcome.EMPTY_RESULT

		caption = self.build_caption(job, model)
		try:
			if model.is_video or is_video_url(url):
				delivered = await self.transport.deliver_video(job.chat_id, url, caption)
			else:
				delivered = await self.transport.deliver_image(job.chat_id, url, caption)
		except Exception:
			LOGGER.exception("Delivery of %s to chat %s raised", url, job.chat_id)
			delivered = False
		if not delivered:
			LOGGER.warning("Delivery of %s to chat %s did not succeed", url, job.chat_id)
		return JobOutcome.DELIVERED

	def build_caption(self, job: Job, model: AIModel) -> str:
		ratio = job.options_snapshot.get(OPTION_RATIO)
		if not isinstance(ratio, str) or not ratio:
			ratio = "1:1"
		return self.localizer.get(
			job.language,
			"gen_caption",
			model=html.escape(model.name),
			ratio=html.escape(ratio),
			prompt=html.escape(truncate_prompt(job.prompt)),
		)

	async def _time_out(self, job: Job) -> JobOutcome:
		await self._clear_notice(job)
		await self._send(job, "gen_timeout")
		return JobOutcome.TIMED_OUT

	async def _clear_notice(self, job: Job) -> None:
		message_id, job.status_message_id = job.status_message_id, None
		if message_id is None:
			return
		try:
			await self.transport.delete_message(job.chat_id, message_id)
		except Exception as exc:
			LOGGER.warning("Could not delete status message %s: %s", message_id, exc)

	async def _send(self, job: Job, key: str, **fields: object) -> Optional[int]:
		text = self.localizer.get(job.language, key, **fields)
		try:
			return await self.transport.send_text(job.chat_id, text)
		except Exception as exc:
			LOGGER.error("Could not notify chat %s (%s): %s", job.chat_id, key, exc)
			return None
