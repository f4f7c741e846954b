from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from .errors import DecodeError, StateError, TransportTimeout
from .session import POLL_TIMEOUT_MS, DeviceSession
from .types import PointSample

logger = logging.getLogger(__name__)


class StreamState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True)
class StreamEvent:
    """Either a sample or an error; `fatal` errors end the stream."""

    sample: Optional[PointSample] = None
    error: Optional[BaseException] = None
    fatal: bool = False
    timestamp: float = field(default_factory=time.time)

    @property
    def is_error(self) -> bool:
        return self.error is not None


Sink = Callable[[StreamEvent], None]


class QueueSink:
    """
    Adapts a bounded queue to the sink interface.

    A full queue blocks the worker for up to `put_timeout` seconds; after that
    the event is dropped and counted. Delivered events keep device order.
    """

    def __init__(self, target: "queue.Queue[StreamEvent]", put_timeout: float = 1.0):
        self.queue = target
        self.put_timeout = put_timeout
        self.dropped = 0

    def __call__(self, event: StreamEvent) -> None:
        try:
            self.queue.put(event, timeout=self.put_timeout)
        except queue.Full:
            self.dropped += 1
            logger.warning("Stream queue full (%d), dropping event", self.queue.qsize())


class StreamController:
    """
    Runs one background worker that polls the session and pushes events to
    a sink.

    State changes only inside `start()` and `stop()`. A worker that ends on a
    fatal transport error leaves the thread dead, which `state` reports as
    IDLE; the next `start()` reaps it.
    """

    def __init__(
        self,
        session: DeviceSession,
        *,
        poll_interval: Optional[float] = None,
        timeout_ms: int = POLL_TIMEOUT_MS,
    ):
        self.session = session
        self.poll_interval = poll_interval
        self.timeout_ms = timeout_ms
        self.last_error: Optional[BaseException] = None
        self._lock = threading.Lock()
        self._state = StreamState.IDLE
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sink: Optional[Sink] = None
        self._stats: Dict[str, int] = {"samples": 0, "errors": 0}
        session._register_stream(self)

    @property
    def state(self) -> StreamState:
        with self._lock:
            if self._state is StreamState.RUNNING and not self._worker_alive():
                return StreamState.IDLE
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is StreamState.RUNNING

    def start(self, sink: Sink) -> None:
        with self._lock:
            if self._worker_alive():
                if self._state is StreamState.STOPPING:
                    raise StateError("Stream is stopping")
                raise StateError("Stream already running")
            if self._thread is not None:
                self._thread.join()
                self._thread = None
            interval = self._resolve_interval()
            self.last_error = None
            self._sink = sink
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run, args=(sink, interval), name="sf45-stream", daemon=True
            )
            self._state = StreamState.RUNNING
            self._thread.start()
        logger.info("Stream started (poll interval %.4fs)", interval)

    def stop(self) -> None:
        with self._lock:
            thread = self._thread
            if thread is None:
                return
            self._state = StreamState.STOPPING
            self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join()
        with self._lock:
            if self._thread is thread:
                self._thread = None
                self._state = StreamState.IDLE
        logger.info("Stream stopped (samples=%d errors=%d)", self._stats["samples"], self._stats["errors"])

    def stats(self) -> Dict[str, int]:
        stats = dict(self._stats)
        stats["dropped"] = int(getattr(self._sink, "dropped", 0))
        return stats

    def _worker_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _resolve_interval(self) -> float:
        if self.poll_interval is not None:
            return max(float(self.poll_interval), 0.0)
        rate = self.session.get_sample_rate()
        return 1.0 / rate.hz

    def _run(self, sink: Sink, interval: float) -> None:
        next_due = time.monotonic()
        while not self._stop_event.is_set():
            try:
                sample = self.session.poll_once(self.timeout_ms)
            except (TransportTimeout, DecodeError) as exc:
                self._stats["errors"] += 1
                logger.debug("Poll failed: %s", exc)
                self._deliver(sink, StreamEvent(error=exc))
            except Exception as exc:
                self._stats["errors"] += 1
                self.last_error = exc
                logger.error("Stream terminated: %s", exc)
                self._deliver(sink, StreamEvent(error=exc, fatal=True), force=True)
                break
            else:
                self._stats["samples"] += 1
                self._deliver(sink, StreamEvent(sample=sample))
            next_due += interval
            delay = next_due - time.monotonic()
            if delay > 0:
                self._stop_event.wait(delay)
            else:
                next_due = time.monotonic()

    def _deliver(self, sink: Sink, event: StreamEvent, force: bool = False) -> None:
        if self._stop_event.is_set() and not force:
            return
        try:
            sink(event)
        except Exception:
            logger.exception("Stream sink raised; continuing")
