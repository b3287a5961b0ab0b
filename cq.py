# ======================================================
# cq – map the colors of an image to K colors with k-means
#   cq -f in.png -t out.png -k 8 -i 1000 -p 4
# ======================================================

import argparse
import os
import sys
import time

import matplotlib.pyplot as plt
import numpy as np
from PIL import Image
from loguru import logger

from kmeans_config import ConfigError, config, configure_logging
from kmeans_engine import clustering_mse, kmeans, write_back
from kmeans_palette import make_swatch_image, nearest_palette_index, plot_rgb_cube, resize_to_max

EXIT_OK = 0
EXIT_NOT_CONVERGED = 1
EXIT_ERROR = 2


def build_parser():
    parser = argparse.ArgumentParser(
        description="Maps the colors in an image to a lower number of colors using the k-means algorithm."
    )
    parser.add_argument('-f', '--from', dest='source', required=True, help='Source image path')
    parser.add_argument('-t', '--to', dest='target', required=True, help='Result image path')
    parser.add_argument('-k', '--clusters', type=int, default=config.CLUSTERS,
                        help='Number of clusters to use in k-means')
    parser.add_argument('-i', '--max_iter', type=int, default=config.MAX_ITER,
                        help='Maximum number of k-means iterations')
    parser.add_argument('-p', '--threads', type=int, default=config.THREADS, help='Number of threads')
    parser.add_argument('-s', '--seed', type=int, default=config.SEED,
                        help='Seed for the initial palette (random if omitted)')
    parser.add_argument('--threshold', type=float, default=config.THRESHOLD,
                        help='Relative per-channel change below which a centroid counts as settled')
    parser.add_argument('--max-side', type=int, default=config.MAX_SIDE,
                        help='Downscale so the longer side is at most this before clustering (0 = off)')
    parser.add_argument('--swatch', help='Also save a palette swatch image to this path')
    parser.add_argument('--plot', action='store_true', help='Show pixels and palette in a 3D RGB cube')
    parser.add_argument('--keep-unconverged', action='store_true',
                        help='Write the best-effort result if the iteration limit is reached')
    parser.add_argument('--progress', action='store_true', help='Show an iteration progress bar')
    parser.add_argument('--log-level', default=config.LOG_LEVEL, help='loguru level for engine logs')
    return parser


def load_rgba(path):
    img = Image.open(path).convert("RGBA")
    return img, np.array(img, dtype=np.uint8)


def check_output_path(path):
    """Fail before clustering if Pillow cannot write this file type."""
    ext = os.path.splitext(path)[1].lower()
    fmt = Image.registered_extensions().get(ext)
    if fmt is None or fmt not in Image.SAVE:
        raise ConfigError(f"cannot write images with extension '{ext}': {path}")


def quantize_file(args):
    print(f"Cluster Count: {args.clusters}")
    print(f"Thread Count: {args.threads}")

    check_output_path(args.target)
    if args.swatch:
        check_output_path(args.swatch)

    print(f"Reading {args.source}...")
    img, image = load_rgba(args.source)

    proc_img, resized = resize_to_max(img, args.max_side)
    if resized:
        pw, ph = proc_img.size
        print(f"Resized to: {pw}x{ph} for clustering (pixels={pw * ph:,})")
        work = np.array(proc_img, dtype=np.uint8)
    else:
        work = image

    print("Clustering is starting...")
    t0 = time.perf_counter()
    result = kmeans(
        work,
        cluster_count=args.clusters,
        iteration_limit=args.max_iter,
        thread_count=args.threads,
        seed=args.seed,
        threshold=args.threshold,
        progress=args.progress,
    )
    t1 = time.perf_counter()
    elapsed_ms = int(round((t1 - t0) * 1000))

    if not result.converged:
        print(f"Did not converge within {args.max_iter} iterations ({elapsed_ms} milliseconds).")
        if not args.keep_unconverged:
            return EXIT_NOT_CONVERGED
        print("Keeping the best-effort palette.")
        if not resized:
            result.apply(image)

    print(f"Finished clustering {work.shape[0] * work.shape[1]:,} pixels "
          f"({result.iterations} iterations) in {elapsed_ms} milliseconds. Storing image...")

    counts, mse = result.counts, result.mse
    if resized:
        # stats below describe the full-size output, not the clustering sample
        flat = image.reshape(-1, image.shape[-1])
        labels = nearest_palette_index(flat, result.centroids)
        counts = np.bincount(labels, minlength=len(result.centroids))
        mse = clustering_mse(flat, result.centroids, labels)
        write_back(flat, result.centroids, labels)

    print("\nFinal palette (RGB centroids):")
    for i, (c, n) in enumerate(zip(result.palette, counts)):
        print(f"  c{i}: {tuple(int(v) for v in c)}  ({int(n):,} px)")
    print(f"Final MSE = {mse:.2f}")

    Image.fromarray(image).save(args.target)
    print(f"Finished. Saved result to: {args.target}")

    if args.swatch:
        make_swatch_image(result.palette).save(args.swatch)
        print(f"Saved palette swatch to: {args.swatch}")

    if args.plot:
        plot_rgb_cube(np.asarray(img.convert("RGB")).reshape(-1, 3), result.palette, seed=args.seed)
        plt.show()

    return EXIT_OK


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return quantize_file(args)
    except ConfigError as exc:
        print(f"Invalid options: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as exc:
        logger.error(f"I/O failure: {exc}")
        print(f"Could not read or write image: {exc}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
