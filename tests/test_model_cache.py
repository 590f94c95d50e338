"""Tests for the single-slot, single-flight model cache."""

import threading
import time

import pytest

from transcript_digest.engines.model_cache import ModelCache
from transcript_digest.exceptions import ModelLoadError
from transcript_digest.models import JobKind

from conftest import RecordingLoader

SUMMARY = JobKind.SUMMARIZATION
TRANSCRIPTION = JobKind.TRANSCRIPTION


def _acquire_in_threads(cache, variants):
    handles, errors = [None] * len(variants), [None] * len(variants)

    def worker(i, variant):
        try:
            handles[i] = cache.acquire(SUMMARY, variant)
        except Exception as e:
            errors[i] = e

    threads = [threading.Thread(target=worker, args=(i, v)) for i, v in enumerate(variants)]
    for thread in threads:
        thread.start()
    return threads, handles, errors


def _wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while not predicate():
        if time.time() > deadline:
            raise AssertionError("condition not reached in time")
        time.sleep(0.01)


def test_concurrent_requests_share_one_load():
    gate = threading.Event()
    loader = RecordingLoader(gate=gate)
    cache = ModelCache(loader)

    threads, handles, errors = _acquire_in_threads(cache, ["small"] * 8)
    _wait_for(lambda: len(loader.calls) == 1)
    time.sleep(0.1)
    gate.set()
    for thread in threads:
        thread.join(timeout=5)

    assert errors == [None] * 8
    assert loader.calls == [(SUMMARY, "small")]
    assert all(h is handles[0] for h in handles)
    assert handles[0].borrowers == 8


def test_cached_model_is_returned_without_loading():
    loader = RecordingLoader()
    cache = ModelCache(loader)

    first = cache.acquire(SUMMARY, "small")
    cache.release(first)
    assert cache.is_loaded(SUMMARY, "small")

    second = cache.acquire(SUMMARY, "small")
    assert second is first
    assert len(loader.calls) == 1


def test_engine_kinds_have_separate_slots():
    loader = RecordingLoader()
    cache = ModelCache(loader)

    with cache.borrow(SUMMARY, "small"), cache.borrow(TRANSCRIPTION, "base"):
        pass

    assert cache.is_loaded(SUMMARY, "small")
    assert cache.is_loaded(TRANSCRIPTION, "base")
    assert not cache.is_loaded(TRANSCRIPTION, "small")


def test_different_variant_waits_for_in_flight_load():
    gate = threading.Event()
    loader = RecordingLoader(gate=gate)
    cache = ModelCache(loader)

    threads, handles, errors = _acquire_in_threads(cache, ["small"])
    _wait_for(lambda: len(loader.calls) == 1)
    more_threads, more_handles, more_errors = _acquire_in_threads(cache, ["large"])
    time.sleep(0.1)
    assert len(loader.calls) == 1

    gate.set()
    for thread in threads + more_threads:
        thread.join(timeout=5)

    assert errors == [None] and more_errors == [None]
    assert loader.calls == [(SUMMARY, "small"), (SUMMARY, "large")]
    assert loader.max_active == 1
    assert cache.is_loaded(SUMMARY, "large")
    assert handles[0].evicted


def test_evicted_handle_disposed_after_last_release():
    disposed = []
    cache = ModelCache(RecordingLoader(), disposer=disposed.append)

    old = cache.acquire(SUMMARY, "small")
    new = cache.acquire(SUMMARY, "large")

    assert old.evicted
    assert disposed == []

    cache.release(old)
    assert disposed == [old]
    cache.release(new)
    assert disposed == [old]


def test_idle_handle_disposed_on_eviction():
    disposed = []
    cache = ModelCache(RecordingLoader(), disposer=disposed.append)

    with cache.borrow(SUMMARY, "small") as old:
        pass
    with cache.borrow(SUMMARY, "large"):
        assert disposed == [old]


def test_load_failure_propagates_and_cache_stays_usable():
    loader = RecordingLoader(error=RuntimeError("out of memory"))
    cache = ModelCache(loader)

    with pytest.raises(ModelLoadError) as exc_info:
        cache.acquire(SUMMARY, "small")
    assert exc_info.value.variant == "small"
    assert not cache.is_loaded(SUMMARY, "small")

    loader.error = None
    handle = cache.acquire(SUMMARY, "small")
    assert handle.variant == "small"
    assert len(loader.calls) == 2


def test_waiters_share_load_failure():
    gate = threading.Event()
    loader = RecordingLoader(gate=gate, error=RuntimeError("broken weights"))
    cache = ModelCache(loader)

    threads, handles, errors = _acquire_in_threads(cache, ["small"] * 4)
    _wait_for(lambda: len(loader.calls) == 1)
    time.sleep(0.1)
    gate.set()
    for thread in threads:
        thread.join(timeout=5)

    assert handles == [None] * 4
    assert all(isinstance(e, ModelLoadError) for e in errors)
    assert len(loader.calls) == 1


def test_disposer_errors_are_not_raised():
    def disposer(handle):
        raise RuntimeError("cannot free")

    cache = ModelCache(RecordingLoader(), disposer=disposer)
    with cache.borrow(SUMMARY, "small"):
        pass

    cache.clear()
    assert not cache.is_loaded(SUMMARY, "small")


def test_clear_defers_disposal_of_borrowed_handles():
    disposed = []
    cache = ModelCache(RecordingLoader(), disposer=disposed.append)

    handle = cache.acquire(SUMMARY, "small")
    cache.clear()
    assert disposed == []

    cache.release(handle)
    assert disposed == [handle]


class LoaderAborted(BaseException):
    pass


def test_interrupted_load_does_not_block_later_requests():
    loader = RecordingLoader(error=LoaderAborted())
    cache = ModelCache(loader)

    with pytest.raises(LoaderAborted):
        cache.acquire(SUMMARY, "small")

    loader.error = None
    threads, handles, errors = _acquire_in_threads(cache, ["small"])
    for thread in threads:
        thread.join(timeout=5)

    assert not threads[0].is_alive()
    assert errors == [None]
    assert handles[0].variant == "small"
