"""
Unit tests for centroid initialization, mean update and change detection.
"""
import numpy as np
import pytest

from kmeans_centroids import (
    CentroidSet, init_centroids, relative_change, centroids_changed, update_centroids,
)


class TestInitCentroids:
    """Initial palette drawn from image pixels"""

    def test_every_centroid_is_an_image_color(self, noisy_image):
        pixels = noisy_image.reshape(-1, 4)
        centroids = init_centroids(pixels, 6, np.random.default_rng(3))
        assert len(centroids) == 6
        colors = {tuple(p) for p in pixels[:, :3].tolist()}
        for c in centroids.colors.astype(int).tolist():
            assert tuple(c) in colors

    def test_same_seed_same_palette(self, noisy_image):
        pixels = noisy_image.reshape(-1, 4)
        a = init_centroids(pixels, 5, np.random.default_rng(99))
        b = init_centroids(pixels, 5, np.random.default_rng(99))
        np.testing.assert_array_equal(a.colors, b.colors)

    def test_duplicates_are_allowed(self):
        """A single-color image gives K identical centroids without looping"""
        pixels = np.full((8, 3), 42, dtype=np.uint8)
        centroids = init_centroids(pixels, 4, np.random.default_rng(0))
        assert len(centroids) == 4
        assert np.all(centroids.colors == 42)

    def test_single_pixel(self):
        pixels = np.array([[1, 2, 3]], dtype=np.uint8)
        centroids = init_centroids(pixels, 3, np.random.default_rng(0))
        np.testing.assert_array_equal(centroids.colors, [[1, 2, 3]] * 3)

    def test_empty_set_rejected(self):
        with pytest.raises(ValueError):
            CentroidSet(np.zeros((0, 3)))


class TestRelativeChange:
    """Relative change with zero previous values"""

    def test_regular_ratio(self):
        change = relative_change([110.0, 100.0, 50.0], [100.0, 100.0, 100.0])
        np.testing.assert_allclose(change, [0.1, 0.0, 0.5])

    def test_zero_previous_uses_absolute_change(self):
        change = relative_change([5.0, 0.0, 0.005], [0.0, 0.0, 0.0])
        assert not np.any(np.isnan(change))
        np.testing.assert_allclose(change, [5.0, 0.0, 0.005])

    def test_zero_previous_counts_as_moved(self):
        centroids = CentroidSet([[0.0, 10.0, 10.0]])
        centroids.previous = np.array([[0.0, 10.0, 10.0]])
        centroids.colors = np.array([[3.0, 10.0, 10.0]])
        assert centroids_changed(centroids).tolist() == [True]

    def test_zero_previous_staying_zero_is_settled(self):
        centroids = CentroidSet([[0.0, 0.0, 0.0]])
        assert centroids_changed(centroids).tolist() == [False]


class TestUpdateCentroids:
    """Mean update and empty clusters"""

    def test_mean_of_members(self):
        pixels = np.array([[0, 0, 0], [10, 20, 30], [100, 100, 100]], dtype=np.uint8)
        labels = np.array([0, 0, 1])
        centroids = CentroidSet([[1, 1, 1], [90, 90, 90]])
        changed = update_centroids(centroids, pixels, labels)
        np.testing.assert_allclose(centroids.colors, [[5, 10, 15], [100, 100, 100]])
        np.testing.assert_allclose(centroids.previous, [[1, 1, 1], [90, 90, 90]])
        assert changed == 2

    def test_counts_sum_to_pixel_count(self, noisy_image):
        pixels = noisy_image.reshape(-1, 4)
        labels = np.arange(len(pixels)) % 7
        centroids = CentroidSet(np.zeros((7, 3)))
        update_centroids(centroids, pixels, labels)
        assert centroids.counts.sum() == len(pixels)

    def test_empty_cluster_keeps_previous_color(self):
        pixels = np.array([[10, 10, 10], [20, 20, 20]], dtype=np.uint8)
        labels = np.array([0, 0])
        centroids = CentroidSet([[15, 15, 15], [200, 50, 0]])
        changed = update_centroids(centroids, pixels, labels)
        np.testing.assert_allclose(centroids.colors, [[15, 15, 15], [200, 50, 0]])
        assert centroids.counts.tolist() == [2, 0]
        assert changed == 0

    def test_alpha_channel_ignored(self):
        pixels = np.array([[10, 20, 30, 0], [30, 40, 50, 255]], dtype=np.uint8)
        centroids = CentroidSet([[0, 0, 0]])
        update_centroids(centroids, pixels, np.array([0, 0]))
        np.testing.assert_allclose(centroids.colors, [[20, 30, 40]])

    def test_palette_rounds_and_clips(self):
        centroids = CentroidSet([[0.4, 127.5, 254.6]])
        assert centroids.palette().tolist() == [[0, 128, 255]]
