# ======================================================
# K-Means Color Quantization – Palette Helpers
#  - map full-size pixels onto a palette
#  - resize before clustering
#  - swatch image + RGB cube plot
# ======================================================

import numpy as np
from PIL import Image
import matplotlib.pyplot as plt
from mpl_toolkits.mplot3d import Axes3D  # noqa: F401

from kmeans_config import config
from kmeans_workers import squared_euclidean_batch

SAMPLE_POINTS = 5000


def nearest_palette_index(pixels, palette, block_size=None):
    """Index of the nearest palette color for every pixel (first on ties)."""
    block_size = block_size or config.BLOCK_SIZE
    pixels = np.asarray(pixels)
    palette = np.asarray(palette, dtype=np.float64)[:, :3]
    labels = np.empty(len(pixels), dtype=np.intp)
    for lo in range(0, len(pixels), block_size):
        hi = min(lo + block_size, len(pixels))
        d2 = squared_euclidean_batch(pixels[lo:hi, :3].astype(np.float64), palette)
        labels[lo:hi] = np.argmin(d2, axis=1)
    return labels


def resize_to_max(img, max_side=512):
    """Shrink img so its longer side is <= max_side; returns (img, resized)."""
    w, h = img.size
    if max_side <= 0 or max(w, h) <= max_side:
        return img, False
    scale = max_side / float(max(w, h))
    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    return img.resize((new_w, new_h), Image.BILINEAR), True


def make_swatch_image(palette, swatch_h=70, w_per=50):
    img = Image.new("RGB", (w_per * len(palette), swatch_h))
    for i, c in enumerate([tuple(int(v) for v in x[:3]) for x in palette]):
        img.paste(c, (i * w_per, 0, (i + 1) * w_per, swatch_h))
    return img


def plot_rgb_cube(pixels, palette, max_points=SAMPLE_POINTS, seed=None, ax=None):
    """
    Scatter image pixels in the RGB cube and mark palette colors with 'X'.

    At most max_points pixels are drawn. Returns the axes.
    """
    pts = np.asarray(pixels)[:, :3].astype(np.uint8)
    if len(pts) > max_points:
        rng = np.random.default_rng(seed)
        idx = rng.choice(len(pts), max_points, replace=False)
        pts = pts[idx]

    if ax is None:
        fig = plt.figure(figsize=(10, 10))
        ax = fig.add_subplot(111, projection="3d")

    ax.scatter(pts[:, 0], pts[:, 1], pts[:, 2], c=pts / 255.0, s=2, alpha=0.6)

    pal = np.asarray(palette, dtype=np.uint8)[:, :3]
    ax.scatter(pal[:, 0], pal[:, 1], pal[:, 2], c=pal / 255.0,
               s=80, marker="X", edgecolors="black", linewidths=1.5)

    ax.set_xlim(0, 255); ax.set_ylim(0, 255); ax.set_zlim(0, 255)
    ax.set_xlabel("Red"); ax.set_ylabel("Green"); ax.set_zlabel("Blue")
    ax.set_title("RGB Cube - Image Colors and K-Means Palette")
    return ax
