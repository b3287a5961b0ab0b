# ======================================================
# K-Means Color Quantization – Parallel Assignment
#  - fixed worker pool, one contiguous pixel range each
#  - per-worker "pending work" signal + run-finished state
#  - orchestrator waits until every signal is lowered
# ======================================================

import math
import threading

import numpy as np
from loguru import logger

from kmeans_config import config


def squared_euclidean_batch(pixels, centroids):
    """(M, 3) pixels x (K, 3) centroids -> (M, K) squared RGB distances."""
    diff = pixels[:, None, :] - centroids[None, :, :]
    return np.sum(diff * diff, axis=2)


def partition(N, thread_count):
    """
    Split [0, N) into thread_count contiguous ranges of ceil(N / thread_count).

    The last range may be shorter; with more threads than pixels the trailing
    ranges are empty.
    """
    size = math.ceil(N / thread_count)
    ranges = []
    for t in range(thread_count):
        start = min(t * size, N)
        end = min(start + size, N)
        ranges.append((start, end))
    return ranges


def assign_range(pixels, colors, labels, start, end, block_size=None):
    """
    Write the nearest centroid index for pixels[start:end] into labels.

    np.argmin returns the first minimum, so ties go to the lowest index.
    """
    block_size = block_size or config.BLOCK_SIZE
    for lo in range(start, end, block_size):
        hi = min(lo + block_size, end)
        rgb = pixels[lo:hi, :3].astype(np.float64)
        d2 = squared_euclidean_batch(rgb, colors)
        labels[lo:hi] = np.argmin(d2, axis=1)


class RunState:
    """Run-finished flag shared by every worker of one run."""

    def __init__(self):
        self._finished = threading.Event()

    def finish(self):
        self._finished.set()

    @property
    def finished(self):
        return self._finished.is_set()


class WorkerSignal:
    """
    "Pending work" flag of one worker.

    Raised by the orchestrator, lowered by the worker once its range is done.
    All reads and writes go through the condition's lock.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._pending = False

    @property
    def pending(self):
        with self._cond:
            return self._pending

    def raise_flag(self):
        with self._cond:
            self._pending = True
            self._cond.notify_all()

    def lower(self):
        with self._cond:
            self._pending = False
            self._cond.notify_all()

    def wake(self):
        with self._cond:
            self._cond.notify_all()

    def wait_for_work(self, state):
        """Block until work is raised or the run finishes; True means work."""
        with self._cond:
            self._cond.wait_for(lambda: self._pending or state.finished)
            return self._pending and not state.finished

    def wait_done(self):
        with self._cond:
            self._cond.wait_for(lambda: not self._pending)


class WorkerPool:
    """
    thread_count workers, created once and reused for every iteration.

    Workers only read centroid colors while their signal is raised; the
    orchestrator only touches centroids and labels while all signals are
    lowered, which is what run_iteration() waits for.
    """

    def __init__(self, pixels, labels, thread_count, block_size=None):
        self.pixels = pixels
        self.labels = labels
        self.block_size = block_size
        self.ranges = partition(len(pixels), thread_count)
        self.signals = [WorkerSignal() for _ in range(thread_count)]
        self.state = RunState()
        self.colors = None
        self._errors = []
        self._errors_lock = threading.Lock()
        self._threads = []

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()
        return False

    def start(self):
        for t, (start, end) in enumerate(self.ranges):
            thread = threading.Thread(
                target=self._worker,
                args=(t, start, end),
                name=f"kmeans-worker-{t}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        logger.debug(f"Started {len(self._threads)} workers over ranges {self.ranges}")

    def _worker(self, t, start, end):
        signal = self.signals[t]
        while signal.wait_for_work(self.state):
            try:
                assign_range(self.pixels, self.colors, self.labels, start, end, self.block_size)
            except Exception as exc:
                logger.error(f"Worker {t} failed on range [{start}, {end}): {exc!r}")
                with self._errors_lock:
                    self._errors.append(exc)
            finally:
                signal.lower()

    def run_iteration(self, colors):
        """Assign every pixel against colors; returns once all workers are done."""
        self.colors = np.array(colors, dtype=np.float64)
        for signal in self.signals:
            signal.raise_flag()
        for signal in self.signals:
            signal.wait_done()
        if self._errors:
            raise self._errors[0]

    def shutdown(self):
        self.state.finish()
        for signal in self.signals:
            signal.wake()
        for thread in self._threads:
            thread.join()
        self._threads = []
