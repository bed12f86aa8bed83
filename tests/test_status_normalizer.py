from __future__ import annotations

import json

import pytest

from models.job_models import JobState
from services.kie.status_normalizer import RawStatus, normalize_status, resolve_state


@pytest.mark.parametrize("word", ["success", "finished", "done", "complete", "SUCCESS"])
def test_success_words_in_state(word: str) -> None:
    assert normalize_status({"data": {"state": word}}).state is JobState.SUCCESS


@pytest.mark.parametrize("word", ["waiting", "pending", "generating", "queued", "queue", "processing"])
def test_waiting_words_in_state(word: str) -> None:
    status = normalize_status({"data": {"state": word}})
    assert status.state is JobState.WAITING
    assert status.result_payload == ""
    assert status.failure_message == ""


def test_textual_state_wins_over_legacy_flag() -> None:
    payload = {"data": {"state": "waiting", "successFlag": 1}}
    assert normalize_status(payload).state is JobState.WAITING


def test_unknown_state_falls_through_to_status_then_flag() -> None:
    assert normalize_status({"data": {"state": "weird", "status": "done"}}).state is JobState.SUCCESS
    assert normalize_status({"data": {"state": "weird", "successFlag": 0}}).state is JobState.WAITING


def test_numeric_status_codes() -> None:
    assert normalize_status({"data": {"status": 1}}).state is JobState.SUCCESS
    assert normalize_status({"data": {"status": 0}}).state is JobState.WAITING
    failed = normalize_status({"data": {"status": 3, "successFlag": 1}})
    assert failed.state is JobState.FAIL
    assert failed.failure_message == "Unknown error / flag failed (raw state: 3)"


def test_legacy_flag_without_other_fields() -> None:
    assert normalize_status({"data": {"successFlag": 1}}).state is JobState.SUCCESS
    assert normalize_status({"data": {"successFlag": 0}}).state is JobState.WAITING
    assert normalize_status({"data": {"successFlag": 2}}).state is JobState.FAIL


def test_bare_data_object_is_accepted() -> None:
    assert normalize_status({"state": "success", "resultJson": "[]"}).state is JobState.SUCCESS


def test_empty_or_non_object_payload_fails() -> None:
    assert normalize_status({}).state is JobState.FAIL
    assert normalize_status(None).state is JobState.FAIL
    assert normalize_status("garbage").failure_message == "Unknown error / flag failed (raw state: empty)"


def test_result_urls_prefer_response_over_info_and_result_json() -> None:
    payload = {
        "data": {
            "successFlag": 1,
            "response": {"resultUrls": ["https://r/1.mp4"]},
            "info": {"resultUrls": ["https://i/1.mp4"]},
            "resultJson": json.dumps({"resultUrls": ["https://j/1.mp4"]}),
        }
    }
    status = normalize_status(payload)
    assert status.first_result_url() == "https://r/1.mp4"


def test_result_urls_fall_back_to_info_then_result_json() -> None:
    info = normalize_status({"data": {"successFlag": 1, "info": {"resultUrls": ["https://i/1.png"]}}})
    assert info.result_urls() == ["https://i/1.png"]

    raw_json = json.dumps({"resultUrls": ["https://j/1.png", "https://j/2.png"]})
    from_json = normalize_status({"data": {"state": "success", "resultJson": raw_json}})
    assert from_json.result_payload == raw_json
    assert from_json.first_result_url() == "https://j/1.png"


def test_success_without_urls_has_empty_document() -> None:
    status = normalize_status({"data": {"state": "success"}})
    assert status.result_payload == "{}"
    assert status.first_result_url() is None


def test_failure_message_preference() -> None:
    both = normalize_status({"data": {"state": "fail", "errorMessage": "quota", "failMsg": "other"}})
    assert both.failure_message == "quota"
    fail_only = normalize_status({"data": {"state": "fail", "errorMessage": "  ", "failMsg": "nsfw"}})
    assert fail_only.failure_message == "nsfw"
    neither = normalize_status({"data": {"state": "fail"}})
    assert neither.failure_message == "Unknown error / flag failed (raw state: fail)"


def test_resolve_state_on_raw_status() -> None:
    assert resolve_state(RawStatus()) is JobState.FAIL
    assert resolve_state(RawStatus(status="Queued")) is JobState.WAITING
