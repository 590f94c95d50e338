"""Tests for the job progress stream."""

import pytest

from transcript_digest.jobs.progress import ProgressStream
from transcript_digest.models import JobState, ProgressEvent


def _event(state, percent):
    return ProgressEvent(job_id="job", state=state, percent=percent)


def test_subscribers_receive_events_until_unsubscribed():
    stream = ProgressStream("job")
    received = []
    unsubscribe = stream.subscribe(received.append)

    stream.publish(_event(JobState.INITIALIZING, 0))
    unsubscribe()
    stream.publish(_event(JobState.PROCESSING, 30))

    assert [e.percent for e in received] == [0]
    assert stream.latest.percent == 30


def test_iteration_stops_after_terminal_event():
    stream = ProgressStream("job")
    stream.publish(_event(JobState.PROCESSING, 50))
    stream.publish(_event(JobState.COMPLETED, 100))
    stream.publish(_event(JobState.PROCESSING, 60))

    assert [e.state for e in stream] == [JobState.PROCESSING, JobState.COMPLETED]
    assert stream.closed
    assert stream.latest.state == JobState.COMPLETED


def test_failing_subscriber_does_not_break_delivery():
    stream = ProgressStream("job")
    received = []

    def broken(event):
        raise RuntimeError("observer bug")

    stream.subscribe(broken)
    stream.subscribe(received.append)
    stream.publish(_event(JobState.PROCESSING, 40))

    assert len(received) == 1


def test_events_time_out_without_progress():
    stream = ProgressStream("job")

    with pytest.raises(TimeoutError):
        next(stream.events(timeout=0.05))


def test_event_serialization():
    event = ProgressEvent(job_id="job", state=JobState.PROCESSING, percent=42.0, current_chunk=2, total_chunks=5)
    data = event.to_dict()

    assert data["state"] == "processing"
    assert (data["current_chunk"], data["total_chunks"]) == (2, 5)
