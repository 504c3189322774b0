"""
Long-lived bar subscriptions with reconnect on transient failures.

``subscribe_bars`` wraps a ``connect`` callable that opens a bar stream. Each
bar is fetched under a tenacity retry policy: a TransientFeedError drops the
stream and reconnects after an exponential wait bounded by ``max_delay``.
Every bar starts a fresh policy, so the wait falls back to ``min_delay`` once
the stream delivers again. Any other error ends the subscription and
propagates to the consumer.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from execution.errors import TransientFeedError
from execution.models import Bar

logger = logging.getLogger("tradesim.data.subscription")


@dataclass(frozen=True)
class Backoff:
    """Exponential reconnect wait: min_delay, min_delay * factor, ... capped at max_delay."""

    min_delay: float = 0.1
    max_delay: float = 10.0
    factor: float = 2.0

    def __post_init__(self) -> None:
        if self.min_delay <= 0 or self.max_delay < self.min_delay or self.factor < 1:
            raise ValueError("invalid backoff parameters")

    def wait(self) -> wait_exponential:
        return wait_exponential(
            multiplier=self.min_delay, min=self.min_delay, max=self.max_delay, exp_base=self.factor
        )

    def retrying(self, stop_event: threading.Event, max_retries: int | None = None) -> Retrying:
        stop = stop_when_event_set(stop_event)
        if max_retries is not None:
            stop = stop | stop_after_attempt(max_retries + 1)
        return Retrying(
            retry=retry_if_exception_type(TransientFeedError),
            wait=self.wait(),
            stop=stop,
            sleep=stop_event.wait,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )


def subscribe_bars(
    connect: Callable[[], Iterable[Bar]],
    stop_event: threading.Event,
    *,
    backoff: Backoff | None = None,
    max_retries: int | None = None,
) -> Iterator[Bar]:
    """Yield bars from ``connect()`` until the stream ends or *stop_event* is set."""
    retrying = (backoff or Backoff()).retrying(stop_event, max_retries)
    stream: Iterator[Bar] | None = None

    def next_bar() -> Bar | None:
        nonlocal stream
        if stop_event.is_set():
            return None
        if stream is None:
            stream = iter(connect())
        try:
            return next(stream, None)
        except TransientFeedError:
            stream = None
            raise

    while not stop_event.is_set():
        try:
            bar = retrying(next_bar)
        except TransientFeedError as e:
            if stop_event.is_set():
                return
            logger.error("giving up on bar stream: %s", e)
            raise
        if bar is None:
            return
        yield bar
