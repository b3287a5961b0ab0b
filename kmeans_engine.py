# ======================================================
# K-Means Color Quantization – Engine
#  - init: random palette from image pixels, worker pool
#  - loop: parallel assignment -> mean update -> check
#  - end : write palette colors back into the buffer
# ======================================================

import enum
from dataclasses import dataclass

import numpy as np
from loguru import logger
from tqdm import tqdm

from kmeans_centroids import init_centroids, update_centroids
from kmeans_config import QuantizeOptions, validate_buffer
from kmeans_workers import WorkerPool


class RunStatus(enum.Enum):
    INITIALIZING = "initializing"
    ITERATING = "iterating"
    CONVERGED = "converged"
    NOT_CONVERGED = "not_converged"


class ConvergenceFailure(RuntimeError):
    """The iteration limit ran out before the palette settled."""

    def __init__(self, result):
        super().__init__(
            f"k-means did not converge within {result.iterations} iterations"
        )
        self.result = result


@dataclass
class KMeansResult:
    status: RunStatus
    iterations: int
    centroids: np.ndarray
    counts: np.ndarray
    assignments: np.ndarray
    mse: float

    @property
    def converged(self):
        return self.status is RunStatus.CONVERGED

    @property
    def palette(self):
        return np.clip(np.rint(self.centroids), 0, 255).astype(np.uint8)

    def raise_for_status(self):
        if not self.converged:
            raise ConvergenceFailure(self)
        return self

    def apply(self, pixels):
        """
        Overwrite the color channels of pixels with their centroid color.

        pixels must satisfy the same rules as kmeans() and hold exactly one
        pixel per assignment; ConfigError otherwise.
        """
        validate_buffer(pixels, len(self.assignments))
        write_back(pixels.reshape(-1, pixels.shape[-1]), self.centroids, self.assignments)
        return pixels


def write_back(pixels, colors, labels):
    """
    Round colors into the buffer's range and store them per pixel.

    Only the first three channels are written; alpha is left alone.
    """
    info = np.iinfo(pixels.dtype)
    rounded = np.clip(np.rint(colors), info.min, info.max).astype(pixels.dtype)
    pixels[:, :3] = rounded[labels]


def clustering_mse(pixels, colors, labels):
    """Mean squared RGB distance between each pixel and its centroid."""
    diff = pixels[:, :3].astype(np.float64) - colors[labels]
    return float(np.mean(np.sum(diff * diff, axis=1)))


def kmeans(pixels, cluster_count, iteration_limit, thread_count,
           seed=None, threshold=0.01, progress=False, rng=None, block_size=None):
    """
    Quantize pixels in place to cluster_count colors.

    pixels        : writable C-contiguous integer array, last axis >= 3 channels
    cluster_count : K >= 1
    iteration_limit, thread_count : >= 1
    seed / rng    : source of the initial palette (seed=None is unseeded)

    On convergence the buffer's color channels are overwritten and the result
    reports the iterations used. Otherwise the buffer is untouched and the
    result has status NOT_CONVERGED; result.apply() writes the best effort.
    Raises ConfigError before any work starts if the options are invalid.
    """
    options = QuantizeOptions(
        pixels=pixels,
        cluster_count=cluster_count,
        iteration_limit=iteration_limit,
        thread_count=thread_count,
        threshold=threshold,
        seed=seed,
    ).validate()
    flat = options.flat_pixels
    N = len(flat)

    status = RunStatus.INITIALIZING
    if rng is None:
        rng = np.random.default_rng(seed)
    centroids = init_centroids(flat, cluster_count, rng)
    labels = np.zeros(N, dtype=np.intp)

    logger.info(
        f"k-means: {N:,} pixels, K={cluster_count}, "
        f"threads={thread_count}, limit={iteration_limit}"
    )

    iterations = 0
    status = RunStatus.ITERATING
    with WorkerPool(flat, labels, thread_count, block_size) as pool:
        for it in tqdm(range(iteration_limit), desc="Iterations", disable=not progress):
            pool.run_iteration(centroids.colors)
            iterations = it + 1
            changed = update_centroids(centroids, flat, labels, threshold)
            logger.debug(f"Iter {it}: {changed} centroid(s) moved")
            if changed == 0:
                status = RunStatus.CONVERGED
                break
        else:
            status = RunStatus.NOT_CONVERGED

    mse = clustering_mse(flat, centroids.colors, labels)
    result = KMeansResult(
        status=status,
        iterations=iterations,
        centroids=centroids.colors.copy(),
        counts=centroids.counts.copy(),
        assignments=labels,
        mse=mse,
    )

    if result.converged:
        write_back(flat, centroids.colors, labels)
        logger.info(f"Converged after {iterations} iteration(s), MSE = {mse:.2f}")
    else:
        logger.warning(f"Did not converge within {iteration_limit} iteration(s), MSE = {mse:.2f}")
    return result
