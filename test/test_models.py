import pytest
from pydantic import ValidationError
from run_status_client.models import (
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    PollPolicy,
    RunResponse,
    RunStatus,
    StatusClass,
    classify_status,
    is_terminal_status,
    status_of,
)
from run_status_client.poller import format_duration, format_progress


@pytest.mark.parametrize(
    "status, terminal",
    [
        ("Done", True),
        ("Failed", True),
        ("Cancelled", True),
        ("Canceled", True),
        ("DONE", True),
        ("FAILED", True),
        ("CANCELLED", True),
        ("CANCELED", True),
        ("Queued", False),
        ("", False),
        ("done", False),
        ("Done ", False),
        ("Cancel", False),
        ("PROCESSING", False),
        ("POST_PROCESS", False),
        (None, False),
    ],
)
def test_is_terminal_status(status, terminal):
    assert is_terminal_status(status) is terminal
    # same answer on every call
    assert is_terminal_status(status) is terminal


@pytest.mark.parametrize(
    "status, terminal",
    [
        (RunStatus.queued, False),
        (RunStatus.initializing, False),
        (RunStatus.processing, False),
        (RunStatus.post_process, False),
        (RunStatus.done, True),
        (RunStatus.failed, True),
        (RunStatus.cancelled, True),
    ],
)
def test_run_status_values(status, terminal):
    assert is_terminal_status(status) is terminal


def test_classify_status():
    assert classify_status("Canceled") == StatusClass.terminal
    assert classify_status("Cancelled") == StatusClass.terminal
    assert classify_status("Queued") == StatusClass.non_terminal
    assert classify_status("") == StatusClass.non_terminal


def test_status_of():
    assert status_of(RunResponse(id="1", status="DONE")) == "DONE"
    assert status_of({"status": "Queued"}) == "Queued"
    assert status_of({}) is None
    assert status_of("Failed") == "Failed"
    assert status_of(object()) is None


def test_run_response_parsing():
    run = RunResponse.model_validate(
        {
            "id": 1234,
            "status": "PROCESSING",
            "repository": "acme/widgets",
            "createdAt": "2025-01-02T03:04:05Z",
            "somethingNew": True,
        }
    )

    assert run.id == "1234"
    assert run.created_at.year == 2025
    assert run.updated_at is None
    assert not run.is_terminal


def test_run_response_accepts_enum_status():
    run = RunResponse(id="r", status=RunStatus.failed)

    assert run.status == "FAILED"
    assert run.is_terminal


def test_poll_policy_defaults():
    policy = PollPolicy()

    assert policy.interval == 5.0
    assert policy.max_duration == 45 * 60
    assert policy.show_progress is True
    assert policy.debug is False
    assert policy.has_deadline


@pytest.mark.parametrize("interval", [0, -1.0])
def test_poll_policy_rejects_non_positive_interval(interval):
    with pytest.raises(ValidationError):
        PollPolicy(interval=interval)


def test_poll_policy_rejects_negative_max_duration():
    with pytest.raises(ValidationError):
        PollPolicy(max_duration=-1)


@pytest.mark.parametrize("max_duration", [0, None])
def test_poll_policy_without_deadline(max_duration):
    assert not PollPolicy(max_duration=max_duration).has_deadline


def test_poll_policy_is_frozen():
    policy = PollPolicy()

    with pytest.raises(ValidationError):
        policy.interval = 1.0


@pytest.mark.parametrize(
    "interval, expected",
    [(0.01, MIN_POLL_INTERVAL), (5.0, 5.0), (120.0, MAX_POLL_INTERVAL)],
)
def test_clamped_interval(interval, expected):
    assert PollPolicy(interval=interval).clamped_interval() == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [
        (0, "0ms"),
        (0.25, "250ms"),
        (0.9999, "999ms"),
        (1, "1.0s"),
        (12.5, "12.5s"),
        (59.9, "59.9s"),
        (59.96, "1.0m"),
        (3599.99, "1.0h"),
        (3569.0, "59.5m"),
        (60, "1.0m"),
        (150, "2.5m"),
        (3600, "1.0h"),
        (5400, "1.5h"),
    ],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_format_progress():
    assert format_progress(12.5, "PROCESSING") == (
        "Polling... [12.5s elapsed] Status: PROCESSING"
    )
    assert format_progress(0.5, RunStatus.queued, "waiting for runner") == (
        "Polling... [500ms elapsed] Status: QUEUED - waiting for runner"
    )
