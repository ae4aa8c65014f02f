"""Concurrent polling of every configured feed on a fixed schedule."""

from __future__ import annotations

import concurrent.futures
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .feeds import FeedFetchError, fetch_feed
from .models import Entry

logger = logging.getLogger(__name__)

_JOIN_STEP = 0.1


@dataclass
class FeedFailure:
    url: str
    error: Exception


@dataclass
class PollResult:
    """Everything collected during one poll cycle."""

    entries: List[Entry] = field(default_factory=list)
    failures: List[FeedFailure] = field(default_factory=list)


def collect_feeds(
    urls: Sequence[str],
    concurrency: int = 10,
    timeout: float = 10.0,
    fetch: Callable[..., List[Entry]] = fetch_feed,
    grace: float = 1.0,
) -> PollResult:
    """Fetch every non-empty URL in parallel and join all of the results.

    A fetch still running ``timeout + grace`` seconds after it started is
    abandoned and reported as a failure, as is anything left when the whole
    cycle runs past its own deadline. The join never waits longer than that.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1.")

    targets = [url for url in urls if url]
    result = PollResult()
    if not targets:
        return result

    workers = min(concurrency, len(targets))
    started: Dict[int, float] = {}

    def run(index: int, url: str) -> List[Entry]:
        started[index] = time.monotonic()
        return fetch(url, timeout=timeout)

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=workers)
    future_to_target = {
        executor.submit(run, index, url): (index, url)
        for index, url in enumerate(targets)
    }
    waves = math.ceil(len(targets) / workers) + 1
    cycle_deadline = time.monotonic() + waves * timeout + grace
    pending = set(future_to_target)

    try:
        while pending:
            done, pending = concurrent.futures.wait(
                pending, timeout=_JOIN_STEP, return_when=concurrent.futures.FIRST_COMPLETED
            )
            for future in done:
                url = future_to_target[future][1]
                try:
                    result.entries.extend(future.result())
                except Exception as exc:  # noqa: BLE001 - one feed never sinks the cycle
                    result.failures.append(FeedFailure(url=url, error=exc))

            now = time.monotonic()
            for future in list(pending):
                index, url = future_to_target[future]
                begun = started.get(index)
                overdue = begun is not None and now - begun > timeout + grace
                if overdue or now > cycle_deadline:
                    pending.discard(future)
                    future.cancel()
                    error = FeedFetchError(url, f"no complete response within {timeout:g}s")
                    result.failures.append(FeedFailure(url=url, error=error))
    finally:
        # Abandoned fetches finish (or fail) in the background.
        executor.shutdown(wait=False, cancel_futures=True)

    return result


def poll_once(
    urls: Sequence[str],
    concurrency: int = 10,
    timeout: float = 10.0,
    fetch: Callable[..., List[Entry]] = fetch_feed,
) -> List[Entry]:
    """Run one poll cycle, log its failures and return the aggregated entries."""
    logger.info("It's time to fetch %d feeds.", sum(1 for url in urls if url))
    result = collect_feeds(urls, concurrency=concurrency, timeout=timeout, fetch=fetch)
    for failure in result.failures:
        logger.warning("Problem fetching %s: %s", failure.url, failure.error)
    logger.info(
        "Done fetching: %d entries, %d failed feeds.",
        len(result.entries),
        len(result.failures),
    )
    return result.entries


class FeedPoller:
    """Deliver a fresh batch of entries to ``sink`` every ``interval`` seconds."""

    def __init__(
        self,
        urls: Sequence[str],
        sink: Callable[[List[Entry]], None],
        interval: float,
        concurrency: int = 10,
        timeout: float = 10.0,
        fetch: Callable[..., List[Entry]] = fetch_feed,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError("Poll interval must be positive.")
        self.urls = tuple(urls)
        self.sink = sink
        self.interval = interval
        self.concurrency = concurrency
        self.timeout = timeout
        self._fetch = fetch
        self._clock = clock
        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll(self) -> None:
        entries = poll_once(
            self.urls,
            concurrency=self.concurrency,
            timeout=self.timeout,
            fetch=self._fetch,
        )
        self.sink(entries)

    def run(self, initial: Optional[List[Entry]] = None) -> None:
        """Deliver the startup batch, then poll on every tick until stopped."""
        if initial is not None:
            logger.info("Using %d cached entries until the next poll.", len(initial))
            self.sink(list(initial))
        else:
            self.poll()

        next_tick = self._clock() + self.interval
        while not self._stopped.is_set():
            delay = next_tick - self._clock()
            if delay > 0 and self._stopped.wait(delay):
                break
            if self._stopped.is_set():
                break

            self.poll()

            now = self._clock()
            next_tick += self.interval
            if next_tick <= now:
                # Overran: keep one pending tick, drop the rest.
                missed = int((now - next_tick) // self.interval)
                next_tick += missed * self.interval

    def start(self, initial: Optional[List[Entry]] = None) -> threading.Thread:
        self._thread = threading.Thread(
            target=self.run, args=(initial,), name="feed-poller", daemon=True
        )
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout)
