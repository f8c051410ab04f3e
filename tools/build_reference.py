#!/usr/bin/env python3
"""
Build the reference embeddings table from a folder of labelled images.

Expected layout:
    refs/
        category_a/
            front.jpg
            angled.jpg
        category_b/
            ...

Each image is embedded with the recognizer model and written to a JSON file
of the form {"category": [[...], [...]], ...}, which is the format the
pipeline loads from matching.reference_path.

Usage:
    python tools/build_reference.py refs/ --output data/data.json
    python tools/build_reference.py refs/ --detect   # crop the detected card first
"""

import argparse
import json
import os
import sys
from typing import Dict, List

# Add project directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

import numpy as np
from tqdm import tqdm

from inference.errors import PipelineError
from main import load_config
from models.config import Config
from observation.image_source import list_images, read_rgb_image
from ops.logging import setup_logging
from recognition.preprocess import crop_region
from runtime.context import build_runtime


def collect_images(root: str) -> Dict[str, List[str]]:
    """Map each sub-directory name of root to its image files."""
    categories: Dict[str, List[str]] = {}
    for name in sorted(os.listdir(root)):
        path = os.path.join(root, name)
        if not os.path.isdir(path):
            continue
        images = list_images(path)
        if images:
            categories[name] = images
    return categories


def main():
    parser = argparse.ArgumentParser(description="Build reference embeddings JSON")
    parser.add_argument("images", type=str, help="Directory with one sub-directory per category")
    parser.add_argument("--config", type=str, default="config/config.yaml", help="Configuration file")
    parser.add_argument("--output", type=str, default=None,
                        help="Output JSON path (default: matching.reference_path)")
    parser.add_argument("--detect", action="store_true",
                        help="Embed the highest-confidence detected card instead of the whole image")
    args = parser.parse_args()

    setup_logging(None, "WARNING")
    config = Config.from_dict(load_config(args.config))
    output = args.output or config.matching.reference_path

    categories = collect_images(args.images)
    if not categories:
        print(f"No category folders with images found in {args.images}")
        sys.exit(1)
    total = sum(len(v) for v in categories.values())
    print(f"Found {len(categories)} categories, {total} images")

    ctx = build_runtime(config, load_reference=False)
    status = ctx.initialize()
    print(status.status_text())
    if not ctx.recognizer_session.is_ready:
        print("Recognizer failed to initialize")
        sys.exit(1)
    if args.detect and not ctx.detector_session.is_ready:
        print("Detector failed to initialize (needed for --detect)")
        sys.exit(1)

    table: Dict[str, List[List[float]]] = {}
    skipped = 0
    with tqdm(total=total, desc="Embedding") as progress:
        for category, paths in categories.items():
            vectors = []
            for path in paths:
                progress.update(1)
                image = read_rgb_image(path)
                if image is None:
                    skipped += 1
                    continue
                try:
                    if args.detect:
                        detections = ctx.pipeline.detector.detect(image)
                        if not detections:
                            skipped += 1
                            continue
                        image = crop_region(image, detections[0].bbox)
                    embedding = ctx.pipeline.extractor.extract(image)
                except PipelineError as e:
                    tqdm.write(f"Skipping {path}: {e}")
                    skipped += 1
                    continue
                vectors.append(np.asarray(embedding, dtype=np.float32).tolist())
            if vectors:
                table[category] = vectors

    ctx.close()

    if not table:
        print("No embeddings created")
        sys.exit(1)

    out_dir = os.path.dirname(output)
    if out_dir and not os.path.exists(out_dir):
        os.makedirs(out_dir)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(table, f)

    count = sum(len(v) for v in table.values())
    print(f"Saved {count} embeddings for {len(table)} categories to {output} ({skipped} skipped)")


if __name__ == "__main__":
    main()
