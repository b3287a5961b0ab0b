# ======================================================
# K-Means Color Quantization – Centroids
#  - random initial palette drawn from image pixels
#  - mean update with empty-cluster handling
#  - relative-change convergence check
# ======================================================

import numpy as np
from loguru import logger

from kmeans_config import config

THRESHOLD = config.THRESHOLD    # relative change per channel, 1% by default


class CentroidSet:
    """
    K color prototypes stored column-wise.

    counts   : members assigned in the last update, shape (K,)
    colors   : current RGB, shape (K, 3), float64
    previous : RGB before the last update, shape (K, 3), float64
    """

    def __init__(self, colors):
        colors = np.array(colors, dtype=np.float64).reshape(-1, 3)
        if len(colors) == 0:
            raise ValueError("a centroid set needs at least one centroid")
        self.colors = colors
        self.previous = colors.copy()
        self.counts = np.zeros(len(colors), dtype=np.int64)

    def __len__(self):
        return len(self.colors)

    def palette(self):
        """Current colors rounded to 8-bit RGB."""
        return np.clip(np.rint(self.colors), 0, 255).astype(np.uint8)


def init_centroids(pixels, K, rng=None):
    """
    Pick K starting colors, each copied from a uniformly drawn pixel.

    The draws are independent, so two centroids may start on the same color.
    """
    if rng is None:
        rng = np.random.default_rng()
    N = len(pixels)
    idx = rng.integers(0, N, size=K)
    return CentroidSet(pixels[idx, :3])


def relative_change(new, previous):
    """
    Per-channel |new - previous| / previous.

    Where previous is exactly 0 the ratio is undefined; the absolute change
    |new| is used there instead, so a channel leaving 0 still counts as moved.
    """
    new = np.asarray(new, dtype=np.float64)
    previous = np.asarray(previous, dtype=np.float64)
    delta = np.abs(new - previous)
    zero = previous == 0
    safe = np.where(zero, 1.0, np.abs(previous))
    return np.where(zero, delta, delta / safe)


def centroids_changed(centroids, threshold=THRESHOLD):
    """Boolean mask of centroids with any channel moving more than threshold."""
    change = relative_change(centroids.colors, centroids.previous)
    return np.any(change > threshold, axis=1)


def update_centroids(centroids, pixels, labels, threshold=THRESHOLD):
    """
    Move every centroid to the mean of its assigned pixels.

    Empty clusters keep their color. Returns the number of centroids that
    changed by more than threshold (0 means converged).
    """
    K = len(centroids)
    rgb = pixels[:, :3]

    centroids.previous = centroids.colors.copy()
    counts = np.bincount(labels, minlength=K)
    new_colors = centroids.colors.copy()

    mask = counts > 0
    for ch in range(3):
        sums = np.bincount(labels, weights=rgb[:, ch], minlength=K)
        new_colors[mask, ch] = sums[mask] / counts[mask]

    empty = np.flatnonzero(~mask)
    if len(empty):
        logger.debug(f"Empty clusters kept at previous color: {empty.tolist()}")

    centroids.counts = counts
    centroids.colors = new_colors
    return int(np.count_nonzero(centroids_changed(centroids, threshold)))
