from __future__ import annotations

import asyncio

import pytest

from conftest import RecordingTransport, ScriptedProvider, success, waiting
from models.errors import ProviderError, UnknownModel
from models.job_models import JobOutcome
from services.jobs.job_manager import JobManager, is_video_url, truncate_prompt
from services.model_catalog import ModelCatalog

CHAT_ID = 555


def _manager(provider, transport, catalog, localizer, **overrides) -> JobManager:
    settings = {"poll_interval": 0.01, "video_timeout": 5.0, "image_timeout": 5.0}
    settings.update(overrides)
    return JobManager(provider, transport, catalog, localizer, **settings)


def _submit(manager: JobManager, user_id: int = 1, prompt: str = "a cat", model_id: str = "nano-banana", options=None):
    return manager.submit(
        user_id=user_id,
        chat_id=CHAT_ID,
        prompt=prompt,
        model_id=model_id,
        options=options if options is not None else {"ratio": "9:16", "format": "png"},
        language="en",
    )


def test_job_delivers_image_after_waiting_polls(transport, catalog, localizer) -> None:
    provider = ScriptedProvider([waiting(), waiting(), success("u")])

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager)
        outcome = await job.task
        return manager, job, outcome

    manager, job, outcome = asyncio.run(scenario())

    assert outcome is JobOutcome.DELIVERED
    assert len(provider.queries) == 3
    assert provider.submitted[0][1] == "google/nano-banana"
    deliveries = [args for name, args in transport.calls if name == "deliver_image"]
    assert len(deliveries) == 1
    _, url, caption = deliveries[0]
    assert url == "u"
    assert "9:16" in caption and "a cat" in caption
    names = transport.names()
    assert names[0] == "send_text"
    assert names.index("delete_message") < names.index("deliver_image")
    assert manager.active_job(1) is None


def test_job_times_out_once(transport, catalog, localizer) -> None:
    provider = ScriptedProvider()

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer, image_timeout=0.05)
        job = await _submit(manager)
        return await job.task

    outcome = asyncio.run(scenario())

    assert outcome is JobOutcome.TIMED_OUT
    assert transport.texts().count("gen_timeout") == 1
    assert "deliver_image" not in transport.names()
    assert transport.names().count("delete_message") == 1


def test_cancel_without_job_returns_false(transport, catalog, localizer) -> None:
    async def scenario():
        manager = _manager(ScriptedProvider(), transport, catalog, localizer)
        return await manager.cancel(42)

    assert asyncio.run(scenario()) is False
    assert transport.calls == []


def test_cancel_stops_polling_and_clears_notice(transport, catalog, localizer) -> None:
    provider = ScriptedProvider()

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager)
        await asyncio.sleep(0.05)
        cancelled = await manager.cancel(1)
        outcome = await job.task
        return manager, cancelled, outcome

    manager, cancelled, outcome = asyncio.run(scenario())

    assert cancelled is True
    assert outcome is JobOutcome.CANCELLED
    assert manager.active_job(1) is None
    assert "delete_message" in transport.names()
    assert "gen_timeout" not in transport.texts()
    assert "deliver_image" not in transport.names()


def test_resubmission_cancels_previous_job(transport, catalog, localizer) -> None:
    provider = ScriptedProvider()

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        first = await _submit(manager, prompt="first")
        second = await _submit(manager, prompt="second")
        first_outcome = await first.task
        still_active = manager.active_job(1)
        await manager.cancel(1)
        await second.task
        return first, second, first_outcome, still_active

    first, second, first_outcome, still_active = asyncio.run(scenario())

    assert first.cancelled
    assert first_outcome is JobOutcome.CANCELLED
    assert still_active is second
    assert second.outcome is JobOutcome.CANCELLED


def test_submit_failure_reports_and_releases(transport, catalog, localizer) -> None:
    provider = ScriptedProvider(submit_error=ProviderError("API error 500", code=500))

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager)
        return manager, await job.task

    manager, outcome = asyncio.run(scenario())

    assert outcome is JobOutcome.START_FAILED
    assert "gen_fail_start" in transport.texts()
    assert "delete_message" in transport.names()
    assert provider.queries == []
    assert manager.active_job(1) is None


def test_success_without_urls_sends_empty_notice(transport, catalog, localizer) -> None:
    provider = ScriptedProvider([{"code": 200, "data": {"state": "success"}}])

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager)
        return await job.task

    assert asyncio.run(scenario()) is JobOutcome.EMPTY_RESULT
    assert "gen_result_empty" in transport.texts()
    assert "deliver_image" not in transport.names()


def test_failed_status_reports_provider_message(transport, catalog, localizer) -> None:
    provider = ScriptedProvider([{"code": 200, "data": {"state": "fail", "failMsg": "nsfw <blocked>"}}])

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager)
        return await job.task

    assert asyncio.run(scenario()) is JobOutcome.FAILED
    assert "gen_fail nsfw &lt;blocked&gt;" in transport.texts()


def test_poll_errors_are_retried(transport, catalog, localizer) -> None:
    provider = ScriptedProvider([ProviderError("polling error 502", code=502), success("https://cdn.test/a.png")])

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager)
        return await job.task

    assert asyncio.run(scenario()) is JobOutcome.DELIVERED
    assert len(provider.queries) == 2


def test_video_model_routes_to_video_delivery(transport, catalog, localizer) -> None:
    provider = ScriptedProvider([{"code": 200, "data": {"successFlag": 1, "response": {"resultUrls": ["https://cdn.test/v.mp4"]}}}])

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager, model_id="veo3_fast", options={"ratio": "16:9", "image_input": []})
        return await job.task

    assert asyncio.run(scenario()) is JobOutcome.DELIVERED
    assert ("send_activity_signal", (CHAT_ID, "upload_video")) in transport.calls
    assert provider.queries == [("task-1", "veo3_fast")]
    assert [name for name in transport.names() if name.startswith("deliver_")] == ["deliver_video"]


def test_unknown_model_is_rejected_before_any_message(transport, catalog, localizer) -> None:
    async def scenario():
        manager = _manager(ScriptedProvider(), transport, catalog, localizer)
        await _submit(manager, model_id="missing")

    with pytest.raises(UnknownModel):
        asyncio.run(scenario())
    assert transport.calls == []


def test_options_snapshot_is_isolated_from_later_edits(transport, catalog, localizer) -> None:
    options = {"ratio": "9:16", "image_input": ["https://files.test/a.jpg"]}

    async def scenario():
        manager = _manager(ScriptedProvider(), transport, catalog, localizer)
        job = await _submit(manager, options=options)
        options["ratio"] = "1:1"
        options["image_input"].append("https://files.test/b.jpg")
        await manager.cancel(1)
        await job.task
        return job

    job = asyncio.run(scenario())
    assert job.options_snapshot == {"ratio": "9:16", "image_input": ["https://files.test/a.jpg"]}


def test_caption_helpers() -> None:
    assert truncate_prompt("x" * 301).endswith("...")
    assert len(truncate_prompt("x" * 301)) == 303
    assert truncate_prompt("short") == "short"
    assert is_video_url("https://cdn.test/clip.MP4?sig=1")
    assert not is_video_url("https://cdn.test/image.png")


def test_declared_family_is_passed_to_provider(transport, localizer) -> None:
    catalog = ModelCatalog.from_dicts(
        [
            {
                "id": "studio",
                "name": "Studio",
                "type": "video",
                "models": [{"id": "clip-x", "name": "Clip X", "api_model_id": "clip-x", "family": "veo"}],
            }
        ]
    )
    provider = ScriptedProvider([success("https://cdn.test/c.mp4")])

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        job = await _submit(manager, model_id="clip-x", options={"ratio": "16:9"})
        return await job.task

    assert asyncio.run(scenario()) is JobOutcome.DELIVERED
    assert provider.families == ["veo", "veo"]
    assert "deliver_video" in transport.names()


class CancelOnNoticeTransport(RecordingTransport):
    """Delivers a /cancel while the start notice is still being sent."""

    def __init__(self) -> None:
        super().__init__()
        self.manager = None
        self.cancel_results = []

    async def send_text(self, chat_id: int, text: str):
        if text.startswith("gen_start") and self.manager is not None:
            self.cancel_results.append(await self.manager.cancel(1))
        return await super().send_text(chat_id, text)


def test_cancel_during_start_notice_stops_job(catalog, localizer) -> None:
    transport = CancelOnNoticeTransport()
    provider = ScriptedProvider([success("u")])

    async def scenario():
        manager = _manager(provider, transport, catalog, localizer)
        transport.manager = manager
        job = await _submit(manager)
        return manager, await job.task

    manager, outcome = asyncio.run(scenario())

    assert transport.cancel_results == [True]
    assert outcome is JobOutcome.CANCELLED
    assert provider.submitted == []
    assert "delete_message" in transport.names()
    assert manager.active_job(1) is None
