#!/usr/bin/env python
"""
Convert a folder of annotations from one format to another.

Usage:
    python scripts/convert_annotations.py <input> <output> --from yolo --to pascal_voc --images <image_dir>

Image dimensions are read from the image folder, which is required when
converting from YOLO (it stores no image size).
"""

import sys
import argparse
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from annotation_io import AnnotationFormat, load_annotations, save_annotations, load_image_metadata, fill_missing_dimensions
from annotation_io.config import setup_logging

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".tif", ".tiff", ".webp"}


def print_errors(result):
    for entry in result.errors[:20]:
        print(f"    ✗ {entry.file_name}: {entry.message}")
    if len(result.errors) > 20:
        print(f"    ... and {len(result.errors) - 20} more")


def main():
    parser = argparse.ArgumentParser(description="Convert annotations between PASCAL-VOC, YOLO and JSON")
    parser.add_argument("input", help="Annotation folder (or .json file)")
    parser.add_argument("output", help="Output folder (or .json file)")
    parser.add_argument("--from", dest="source_format", required=True, help="Input format: pascal_voc, yolo, json")
    parser.add_argument("--to", dest="target_format", required=True, help="Output format: pascal_voc, yolo, json")
    parser.add_argument("--images", required=True, help="Folder containing the annotated images")
    parser.add_argument("--workers", type=int, default=None, help="Worker threads")
    parser.add_argument("--log-level", default=None, help="Logging level (default: from environment or INFO)")

    args = parser.parse_args()
    setup_logging(args.log_level)

    try:
        source = AnnotationFormat.parse(args.source_format)
        target = AnnotationFormat.parse(args.target_format)
    except ValueError as e:
        print(f"✗ {e}")
        sys.exit(2)

    image_dir = Path(args.images)
    if not image_dir.is_dir():
        print(f"✗ Image folder not found: {image_dir}")
        sys.exit(1)
    image_paths = sorted(p for p in image_dir.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)

    print(f"Converting {source.value} -> {target.value}")
    print(f"Input: {args.input}")
    print(f"Output: {args.output}")
    print("-" * 50)

    meta_result = load_image_metadata(image_paths, max_workers=args.workers)
    print(f"Images: {meta_result.success_count} readable, {meta_result.error_count} skipped")

    try:
        imported = load_annotations(
            source, args.input, meta_result.valid_files, {}, {},
            max_workers=args.workers, image_metadata=meta_result.metadata,
        )
    except (FileNotFoundError, NotADirectoryError) as e:
        print(f"✗ Import failed: {e}")
        sys.exit(1)

    print(f"Imported: {imported.success_count} annotation(s) in {imported.elapsed_ms} ms")
    print_errors(imported)

    missing = fill_missing_dimensions(imported.annotations, meta_result.metadata)
    if missing:
        print(f"  ⚠ {len(missing)} annotation(s) without image dimensions")

    saved = save_annotations(target, imported.data, args.output, max_workers=args.workers)
    print(f"Saved: {saved.success_count} annotation(s) in {saved.elapsed_ms} ms")
    print_errors(saved)

    if imported.has_errors or saved.has_errors:
        sys.exit(1)
    print("✓ Conversion complete")


if __name__ == "__main__":
    main()
