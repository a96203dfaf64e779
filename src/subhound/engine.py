"""Bounded-concurrency work distribution shared by the brute-force and scan tools.

A fixed number of worker threads pull items from a WorkQueue, run one fetch per
item through a RateLimitedFetcher and record the outcome into a shared result
aggregator. Counters, queue and aggregator each sit behind their own lock.
"""
import sys
import time
import random
import logging
import threading
import subprocess
from collections import deque, namedtuple
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

import backoff
import dns.exception
import requests

from .config import logger, PROGRESS_INTERVAL
from .utils.dns_utils import normalize_domain

Success = namedtuple('Success', ['item', 'payload'])
Empty = namedtuple('Empty', ['item'])
Failure = namedtuple('Failure', ['item', 'reason'])

ProgressSnapshot = namedtuple('ProgressSnapshot', ['done', 'total', 'found', 'elapsed'])
RunSummary = namedtuple('RunSummary', ['total', 'completed', 'found', 'failed', 'elapsed', 'results', 'failures'])

TIMEOUT_ERRORS = (
    requests.exceptions.Timeout,
    subprocess.TimeoutExpired,
    dns.exception.Timeout,
    TimeoutError,
)


def describe_error(error):
    message = str(error).strip()
    return message or type(error).__name__


def format_duration(seconds):
    seconds = int(max(0, seconds))
    minutes, secs = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class WorkQueue:
    """Pre-populated queue; each item is handed out exactly once."""

    DISCIPLINES = ('fifo', 'lifo')

    def __init__(self, items, discipline='fifo'):
        if discipline not in self.DISCIPLINES:
            raise ValueError(f"Unknown queue discipline: {discipline!r}")
        self.discipline = discipline
        self._items = deque(items)
        self._lock = threading.Lock()

    def dequeue(self):
        """Returns the next item, or None once the queue is observed empty."""
        with self._lock:
            if not self._items:
                return None
            if self.discipline == 'fifo':
                return self._items.popleft()
            return self._items.pop()

    def __len__(self):
        with self._lock:
            return len(self._items)


class RateLimitedFetcher:
    """Wraps one outbound call so that it always yields a FetchOutcome.

    `call(item)` returns a payload; a falsy payload means Empty. Exceptions are
    turned into Failure outcomes and never leave fetch().
    """

    def __init__(self, call, name=None, attempts=1, retry_delay=0, rate_limit=0.0):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.call = call
        self.name = name or getattr(call, '__name__', 'fetch')
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.rate_limit = rate_limit

        self._call = self._invoke
        if attempts > 1:
            self._call = backoff.on_exception(
                backoff.constant, Exception,
                max_tries=attempts, interval=retry_delay, jitter=None,
                logger=logger, backoff_log_level=logging.DEBUG, giveup_log_level=logging.DEBUG,
            )(self._invoke)

    def _invoke(self, item):
        return self.call(item)

    def fetch(self, item):
        if self.rate_limit > 0:
            time.sleep(self.rate_limit * random.uniform(0.8, 1.2))

        try:
            payload = self._call(item)
        except TIMEOUT_ERRORS as e:
            logger.debug(f" [!] {self.name} timed out for {item}: {e}")
            return Failure(item, f"timeout: {describe_error(e)}")
        except Exception as e:
            logger.debug(f" [!] {self.name} failed for {item}: {type(e).__name__} - {e}")
            return Failure(item, describe_error(e))

        if not payload:
            return Empty(item)
        return Success(item, payload)


class ResultList:
    """Append-only outcome list in completion order. Does not dedupe."""

    def __init__(self, keep_failures=False):
        self.keep_failures = keep_failures
        self._entries = []
        self._lock = threading.Lock()

    def record(self, outcome):
        if isinstance(outcome, Empty):
            return
        if isinstance(outcome, Failure) and not self.keep_failures:
            return
        with self._lock:
            self._entries.append(outcome)

    @property
    def entries(self):
        with self._lock:
            return list(self._entries)

    @property
    def successes(self):
        return [e for e in self.entries if isinstance(e, Success)]

    @property
    def failures(self):
        return [e for e in self.entries if isinstance(e, Failure)]

    def __len__(self):
        with self._lock:
            return len(self._entries)


class ResultSet:
    """Deduplicating set of normalized domain names, optionally scoped to one zone."""

    def __init__(self, scope=None):
        self.scope = normalize_domain(scope) if scope else None
        self._names = set()
        self._lock = threading.Lock()

    def in_scope(self, name):
        if not name or '*' in name or any(c.isspace() for c in name):
            return False
        if self.scope is None:
            return True
        return name == self.scope or name.endswith('.' + self.scope)

    def add(self, name):
        """Adds one name. Returns True only when it was not already present."""
        if not isinstance(name, str):
            return False
        name = normalize_domain(name)
        if not self.in_scope(name):
            return False
        with self._lock:
            if name in self._names:
                return False
            self._names.add(name)
            return True

    def update(self, names):
        return sum(1 for name in names if self.add(name))

    def record(self, outcome):
        if not isinstance(outcome, Success):
            return
        payload = outcome.payload
        self.update([payload] if isinstance(payload, str) else payload)

    def sorted(self):
        with self._lock:
            return sorted(self._names)

    def __contains__(self, name):
        with self._lock:
            return normalize_domain(name) in self._names

    def __len__(self):
        with self._lock:
            return len(self._names)


class ProgressReporter:
    """Writes a single progress line, at most once per interval plus once at the end."""

    def __init__(self, label, interval=PROGRESS_INTERVAL, stream=None, clock=time.monotonic):
        self.label = label
        self.interval = interval
        self.stream = stream
        self.clock = clock
        self.emitted = 0
        self._last_emit = None
        self._last_done = -1
        self._finished = False
        self._lock = threading.Lock()

    def format_line(self, snapshot):
        done, total, found, elapsed = snapshot
        percent = (done / total) * 100 if total else 100.0
        rate = done / elapsed if elapsed > 0 else 0.0
        eta = format_duration((total - done) / rate) if rate > 0 else 'calculating...'
        return (f" [.] {self.label}: {percent:.1f}% ({done}/{total}) - Found: {found}"
                f" - {format_duration(elapsed)} - {rate:.1f}/s - ETA: {eta}")

    def update(self, snapshot):
        with self._lock:
            # Snapshots can arrive out of order across threads
            if self._finished or snapshot.done < self._last_done:
                return False
            now = self.clock()
            final = snapshot.done >= snapshot.total
            if not final and self._last_emit is not None and now - self._last_emit < self.interval:
                return False

            self._last_emit = now
            self._last_done = snapshot.done
            self._finished = final
            self.emitted += 1

            stream = self.stream or sys.stdout
            stream.write('\r' + self.format_line(snapshot) + ('\n' if final else ''))
            stream.flush()
            return True


class RunState:
    """Per-run counters shared by all workers."""

    def __init__(self, total, results):
        self.total = total
        self.results = results
        self.completed = 0
        self.found = 0
        self.failures = []
        self.started = time.monotonic()
        self.started_at = datetime.now()
        self._lock = threading.Lock()

    def elapsed(self):
        return time.monotonic() - self.started

    def complete(self, outcome):
        with self._lock:
            self.completed += 1
            if isinstance(outcome, Success):
                self.found += 1
            elif isinstance(outcome, Failure):
                self.failures.append(outcome)
            return ProgressSnapshot(self.completed, self.total, self.found, self.elapsed())

    def summary(self):
        with self._lock:
            return RunSummary(
                total=self.total,
                completed=self.completed,
                found=self.found,
                failed=len(self.failures),
                elapsed=self.elapsed(),
                results=self.results,
                failures=list(self.failures),
            )


class WorkerPool:
    def __init__(self, concurrency, reporter=None):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self.reporter = reporter

    def run(self, queue, fetcher, aggregator):
        """Drains the queue with `concurrency` workers and blocks until all of them exit.

        An interrupt (or any other exception) in the caller stops workers from taking
        new items; fetches already in flight are left to finish on their own.
        """
        state = RunState(len(queue), aggregator)
        stop = threading.Event()
        logger.debug(f"[*] Starting {self.concurrency} workers for {state.total} items ({fetcher.name}).")

        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix='subhound-worker')
        try:
            futures = [executor.submit(self._worker, queue, fetcher, state, stop) for _ in range(self.concurrency)]
            for future in futures:
                future.result()
        except BaseException:
            stop.set()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        summary = state.summary()
        logger.debug(f"[*] Pool finished: {summary.completed}/{summary.total} done, {summary.found} found, {summary.failed} failed.")
        return summary

    def _worker(self, queue, fetcher, state, stop):
        handled = 0
        while not stop.is_set():
            item = queue.dequeue()
            if item is None:
                break

            outcome = fetcher.fetch(item)
            if not isinstance(outcome, Empty):
                state.results.record(outcome)
            snapshot = state.complete(outcome)
            if self.reporter:
                self.reporter.update(snapshot)
            handled += 1
        return handled


def run_pool(queue, fetcher, aggregator, concurrency, reporter=None):
    return WorkerPool(concurrency, reporter).run(queue, fetcher, aggregator)
