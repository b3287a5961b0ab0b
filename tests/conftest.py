"""
Test configuration and fixtures for the k-means quantizer tests.
"""
import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest


@pytest.fixture
def black_white_pixels():
    """Two black and two white RGB pixels."""
    return np.array(
        [[0, 0, 0], [0, 0, 0], [255, 255, 255], [255, 255, 255]],
        dtype=np.uint8,
    )


@pytest.fixture
def noisy_image():
    """40x30 RGBA image with random colors and random alpha."""
    rng = np.random.default_rng(1234)
    return rng.integers(0, 256, size=(30, 40, 4), dtype=np.uint8)


@pytest.fixture
def two_tone_pixels():
    """Half black, half (200,200,200): no pixel lies near the overall mean."""
    pixels = np.zeros((10, 3), dtype=np.uint8)
    pixels[5:] = 200
    return pixels
