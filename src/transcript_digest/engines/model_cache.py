"""
Single-slot, single-flight cache of loaded inference models.

The cache holds at most one model per engine kind. Concurrent requests for an
engine kind share one in-flight load: the first caller runs the loader and
every other caller waits on the same Future instead of starting a second load.
Jobs borrow handles and release them when done; a handle replaced by a newer
variant is only disposed of once its last borrower has released it.
"""

import logging
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from ..exceptions import ModelLoadError
from ..models import JobKind, ModelHandle

logger = logging.getLogger(__name__)

ModelLoader = Callable[[JobKind, str], Any]
ModelDisposer = Callable[[ModelHandle], None]


class ModelCache:
    """Holds one loaded model per engine kind and deduplicates concurrent loads."""

    def __init__(self, loader: ModelLoader, disposer: Optional[ModelDisposer] = None):
        """
        Initialize the model cache.

        Args:
            loader: Callable returning a loaded engine for (engine_kind, variant)
            disposer: Optional callable invoked when an evicted handle is discarded
        """
        self._loader = loader
        self._disposer = disposer
        self._slots: Dict[JobKind, ModelHandle] = {}
        self._loads: Dict[JobKind, Tuple[str, Future]] = {}
        self._lock = threading.Lock()

    def is_loaded(self, engine_kind: JobKind, variant: str) -> bool:
        """Check whether a matching handle is cached, without loading anything."""
        with self._lock:
            handle = self._slots.get(engine_kind)
            return handle is not None and handle.variant == variant

    def acquire(self, engine_kind: JobKind, variant: str) -> ModelHandle:
        """
        Borrow a handle for (engine_kind, variant), loading it if needed.

        The caller must hand the handle back with release().

        Raises:
            ModelLoadError: If the model could not be loaded
        """
        while True:
            with self._lock:
                handle = self._slots.get(engine_kind)
                if handle is not None and handle.variant == variant:
                    handle.borrowers += 1
                    return handle

                in_flight = self._loads.get(engine_kind)
                if in_flight is None:
                    pending: Future = Future()
                    self._loads[engine_kind] = (variant, pending)
                    break

            loading_variant, pending = in_flight
            logger.debug(f"Waiting for in-flight {engine_kind.value} load of '{loading_variant}'")
            try:
                pending.result()
            except ModelLoadError:
                if loading_variant == variant:
                    raise
            # Re-check the slot: the finished load may or may not match our variant

        return self._load(engine_kind, variant, pending)

    def release(self, handle: ModelHandle) -> None:
        """Return a borrowed handle, disposing of it if it was evicted meanwhile."""
        with self._lock:
            if handle.borrowers > 0:
                handle.borrowers -= 1
            dispose = handle.evicted and handle.borrowers == 0

        if dispose:
            self._dispose(handle)

    @contextmanager
    def borrow(self, engine_kind: JobKind, variant: str) -> Iterator[ModelHandle]:
        """Context manager pairing acquire() with release()."""
        handle = self.acquire(engine_kind, variant)
        try:
            yield handle
        finally:
            self.release(handle)

    def clear(self) -> None:
        """Evict every cached handle; borrowed ones are disposed of on release."""
        with self._lock:
            handles = list(self._slots.values())
            self._slots.clear()
            idle = []
            for handle in handles:
                handle.evicted = True
                if handle.borrowers == 0:
                    idle.append(handle)

        for handle in idle:
            self._dispose(handle)

    def _load(self, engine_kind: JobKind, variant: str, pending: Future) -> ModelHandle:
        """Run the loader as the owner of the in-flight load."""
        logger.info(f"Loading {engine_kind.value} model: {variant}")
        try:
            model = self._loader(engine_kind, variant)
        except Exception as e:
            error = e if isinstance(e, ModelLoadError) else ModelLoadError(engine_kind.value, variant, str(e))
            logger.error(f"Failed to load {engine_kind.value} model '{variant}': {e}")
            with self._lock:
                self._loads.pop(engine_kind, None)
            pending.set_exception(error)
            if error is e:
                raise
            raise error from e
        except BaseException as e:
            # Interrupted loads must still release waiters and the in-flight slot
            with self._lock:
                self._loads.pop(engine_kind, None)
            pending.set_exception(ModelLoadError(engine_kind.value, variant, f"load interrupted ({type(e).__name__})"))
            raise

        handle = ModelHandle(engine_kind=engine_kind, variant=variant, model=model, borrowers=1)
        with self._lock:
            previous = self._slots.get(engine_kind)
            self._slots[engine_kind] = handle
            self._loads.pop(engine_kind, None)
            dispose_previous = False
            if previous is not None:
                previous.evicted = True
                dispose_previous = previous.borrowers == 0

        if dispose_previous:
            self._dispose(previous)

        pending.set_result(handle)
        logger.info(f"{engine_kind.value} model loaded: {variant}")
        return handle

    def _dispose(self, handle: ModelHandle) -> None:
        logger.info(f"Discarding {handle.engine_kind.value} model: {handle.variant}")
        if self._disposer is not None:
            try:
                self._disposer(handle)
            except Exception as e:
                logger.warning(f"Error while discarding model {handle.variant}: {e}")
