# ======================================================
# K-Means Color Quantization – Configuration
# Defaults, environment overrides and run options
# ======================================================

import os
import sys
from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger


class ConfigError(ValueError):
    """Raised when run options cannot describe a valid clustering run."""


def _optional_int(value):
    if value is None or value == "":
        return None
    return int(value)


# ----------------- PARAMETERS -----------------

class Config:
    """Defaults for the quantizer, overridable through CQ_* variables."""

    CLUSTERS: int = int(os.environ.get("CQ_CLUSTERS", "8"))
    MAX_ITER: int = int(os.environ.get("CQ_MAX_ITER", "1000"))
    THREADS: int = int(os.environ.get("CQ_THREADS", "4"))
    THRESHOLD: float = float(os.environ.get("CQ_THRESHOLD", "0.01"))
    SEED: Optional[int] = _optional_int(os.environ.get("CQ_SEED"))

    # 0 disables downscaling before clustering
    MAX_SIDE: int = int(os.environ.get("CQ_MAX_SIDE", "0"))

    LOG_LEVEL: str = os.environ.get("CQ_LOG_LEVEL", "INFO")

    # rows per distance block inside a worker range
    BLOCK_SIZE: int = 65536

    @classmethod
    def validate_clusters(cls, k) -> bool:
        return k >= 1

    @classmethod
    def validate_threads(cls, threads) -> bool:
        return threads >= 1

    @classmethod
    def validate_iteration_limit(cls, limit) -> bool:
        return limit >= 1

    @classmethod
    def validate_threshold(cls, threshold) -> bool:
        return threshold >= 0.0


config = Config()


def validate_buffer(pixels, pixel_count=None):
    """
    Check that pixels can be viewed as N x C and written in place.

    pixel_count, when given, is the exact N the buffer must hold.
    """
    if not isinstance(pixels, np.ndarray):
        raise ConfigError("pixel buffer must be a numpy array")
    if pixels.ndim < 2 or pixels.shape[-1] < 3:
        raise ConfigError(f"pixel buffer needs >= 3 channels per pixel, got shape {pixels.shape}")
    if pixels.size == 0:
        raise ConfigError("pixel buffer is empty")
    if not np.issubdtype(pixels.dtype, np.integer):
        raise ConfigError(f"pixel buffer must hold integral samples, got {pixels.dtype}")
    if not pixels.flags.c_contiguous:
        raise ConfigError("pixel buffer must be C-contiguous to be updated in place")
    if not pixels.flags.writeable:
        raise ConfigError("pixel buffer is read-only")
    n = pixels.size // pixels.shape[-1]
    if pixel_count is not None and n != pixel_count:
        raise ConfigError(f"pixel buffer holds {n} pixels, expected {pixel_count}")


@dataclass
class QuantizeOptions:
    """
    Parameters of a single clustering run.

    pixels is the caller's buffer; it is viewed as N x C and mutated in place,
    so it must be a writable, C-contiguous integer array with C >= 3.
    """

    pixels: np.ndarray
    cluster_count: int = config.CLUSTERS
    iteration_limit: int = config.MAX_ITER
    thread_count: int = config.THREADS
    threshold: float = config.THRESHOLD
    seed: Optional[int] = config.SEED

    def validate(self):
        if not config.validate_clusters(self.cluster_count):
            raise ConfigError(f"cluster_count must be >= 1, got {self.cluster_count}")
        if not config.validate_threads(self.thread_count):
            raise ConfigError(f"thread_count must be >= 1, got {self.thread_count}")
        if not config.validate_iteration_limit(self.iteration_limit):
            raise ConfigError(f"iteration_limit must be >= 1, got {self.iteration_limit}")
        if not config.validate_threshold(self.threshold):
            raise ConfigError(f"threshold must be >= 0, got {self.threshold}")

        validate_buffer(self.pixels)
        return self

    @property
    def flat_pixels(self) -> np.ndarray:
        """N x C view of the buffer (shares memory with it)."""
        return self.pixels.reshape(-1, self.pixels.shape[-1])


# loguru is disabled for these until configure_logging() runs
ENGINE_MODULES = ("kmeans_centroids", "kmeans_workers", "kmeans_engine")


def configure_logging(level=None):
    """Install a single stderr sink for loguru and turn on engine logs."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
        level=(level or config.LOG_LEVEL).upper(),
    )
    for name in ENGINE_MODULES:
        logger.enable(name)


def silence_engine_logs():
    """Library use is quiet until configure_logging() opts in."""
    for name in ENGINE_MODULES:
        logger.disable(name)


silence_engine_logs()
