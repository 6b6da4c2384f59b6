from __future__ import annotations

import logging

import pytest

import d1dump.export as export_module
from d1dump.errors import ExportCancelledError, ExportTimeoutError, JobFailedError, TransportError
from d1dump.export import (
    EXPORT_CHUNK_LIMIT,
    ActiveStatus,
    ArtifactHandle,
    CompleteStatus,
    ExportRequest,
    ProgressEvent,
    parse_job_status,
    renumber_progress,
    run_export,
)
from tests.conftest import DATABASE_ID, FakeTransport
from tests.payloads import active, complete, failed

class FakeClock:
    def __init__(self, ticks=None):
        self.ticks = list(ticks or [])
        self.sleeps = []

    def monotonic(self) -> float:
        return self.ticks.pop(0) if self.ticks else 0.0

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

@pytest.fixture
def request_users() -> ExportRequest:
    return ExportRequest(database_id=DATABASE_ID, tables=("users",), no_schema=True)

def test_first_request_has_no_bookmark_and_later_ones_echo_the_last(request_users):
    transport = FakeTransport([
        active("b1"),
        active("b2"),
        active("b3"),
        complete("dump.sql", "https://x/y"),
    ])

    run_export(transport, request_users, on_progress=lambda event: None)

    bodies = [call["body"] for call in transport.calls]
    assert len(bodies) == 4
    assert "currentBookmark" not in bodies[0]
    assert [body["currentBookmark"] for body in bodies[1:]] == ["b1", "b2", "b3"]

def test_every_request_carries_the_same_options_and_chunk_limit(request_users):
    transport = FakeTransport([active("b1"), active("b2"), complete("dump.sql", "https://x/y")])

    run_export(transport, request_users, on_progress=lambda event: None)

    for call in transport.calls:
        assert call["database_id"] == DATABASE_ID
        assert call["body"]["outputFormat"] == "polling"
        assert call["body"]["dumpOptions"] == {
            "tables": ["users"],
            "noSchema": True,
            "limit": EXPORT_CHUNK_LIMIT,
        }

def test_uploaded_parts_are_numbered_by_arrival(request_users):
    transport = FakeTransport([
        active("b1", ["Uploaded part 7", "Uploaded part 3", "Uploaded part 9"]),
        complete("dump.sql", "https://x/y"),
    ])
    events = []

    run_export(transport, request_users, on_progress=events.append)

    assert [event.part for event in events] == [1, 2, 3]
    assert [str(event) for event in events] == ["Uploaded part 1", "Uploaded part 2", "Uploaded part 3"]

def test_part_counter_carries_across_polls_and_other_lines_pass_through(request_users):
    transport = FakeTransport([
        active("b1", ["Uploaded part 2"]),
        active("b2", ["Exporting table users", "Uploaded part 1"]),
        complete("dump.sql", "https://x/y", ["Uploaded part 3", "Export finished"]),
    ])
    events = []

    run_export(transport, request_users, on_progress=events.append)

    assert [str(event) for event in events] == [
        "Uploaded part 1",
        "Exporting table users",
        "Uploaded part 2",
        "Uploaded part 3",
        "Export finished",
    ]
    assert events[1] == ProgressEvent(message="Exporting table users")

def test_complete_returns_handle_and_stops_polling(request_users):
    transport = FakeTransport([
        active("b1", ["Uploaded part 2"]),
        complete("dump.sql", "https://x/y"),
    ])
    events = []

    handle = run_export(transport, request_users, on_progress=events.append)

    assert handle == ArtifactHandle(filename="dump.sql", signed_url="https://x/y")
    assert [event.part for event in events] == [1]
    assert len(transport.calls) == 2

def test_error_status_raises_joined_messages_without_polling_again(request_users):
    transport = FakeTransport([
        failed(["disk full", "quota exceeded"]),
        active("never"),
    ])

    with pytest.raises(JobFailedError) as excinfo:
        run_export(transport, request_users, on_progress=lambda event: None)

    assert "disk full" in str(excinfo.value)
    assert "quota exceeded" in str(excinfo.value)
    assert excinfo.value.errors == ["disk full", "quota exceeded"]
    assert len(transport.calls) == 1

def test_progress_lines_are_reported_before_an_error_is_raised(request_users):
    transport = FakeTransport([failed(["boom"], ["Uploaded part 4"])])
    events = []

    with pytest.raises(JobFailedError):
        run_export(transport, request_users, on_progress=events.append)

    assert [str(event) for event in events] == ["Uploaded part 1"]

def test_active_status_without_bookmark_is_malformed(request_users):
    reply = active("b1")
    del reply["result"]["at_bookmark"]
    transport = FakeTransport([reply])

    with pytest.raises(TransportError):
        run_export(transport, request_users)

    assert len(transport.calls) == 1

def test_unknown_status_is_malformed():
    with pytest.raises(TransportError, match="Malformed"):
        parse_job_status({"status": "paused", "messages": []})

def test_parse_job_status_returns_tagged_variants():
    assert isinstance(parse_job_status(active("b9")["result"]), ActiveStatus)
    status = parse_job_status(complete("a.sql", "https://signed/a")["result"])
    assert isinstance(status, CompleteStatus)
    assert status.result.signed_url == "https://signed/a"

def test_renumber_progress_is_pure():
    events, count = renumber_progress(["Uploaded part 12", "hello"], 5)

    assert count == 6
    assert events == [
        ProgressEvent(message="Uploaded part 12", part=6),
        ProgressEvent(message="hello"),
    ]

def test_progress_goes_to_logging_without_callback(request_users, caplog):
    transport = FakeTransport([complete("dump.sql", "https://x/y", ["Uploaded part 8"])])

    with caplog.at_level(logging.INFO, logger="d1dump.export"):
        run_export(transport, request_users)

    assert "Uploaded part 1" in caplog.text

def test_to_body_omits_unset_toggles():
    body = ExportRequest(database_id="db").to_body()

    assert body == {
        "outputFormat": "polling",
        "dumpOptions": {"tables": [], "limit": EXPORT_CHUNK_LIMIT},
    }

def test_poll_interval_sleeps_only_between_polls(request_users, monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(export_module, "time", clock)
    transport = FakeTransport([active("b1"), active("b2"), complete("dump.sql", "https://x/y")])

    run_export(transport, request_users, on_progress=lambda event: None, poll_interval=0.5)

    assert clock.sleeps == [0.5, 0.5]

def test_timeout_stops_before_the_next_poll(request_users, monkeypatch):
    clock = FakeClock([0.0, 0.0, 5.0])
    monkeypatch.setattr(export_module, "time", clock)
    transport = FakeTransport([active("b1"), complete("dump.sql", "https://x/y")])

    with pytest.raises(ExportTimeoutError):
        run_export(transport, request_users, on_progress=lambda event: None, timeout=1.0)

    assert len(transport.calls) == 1

def test_cancellation_is_checked_before_each_poll(request_users):
    transport = FakeTransport([active("b1"), complete("dump.sql", "https://x/y")])

    with pytest.raises(ExportCancelledError):
        run_export(
            transport,
            request_users,
            on_progress=lambda event: None,
            should_cancel=lambda: len(transport.calls) >= 1,
        )

    assert len(transport.calls) == 1
