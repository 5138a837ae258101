"""
Image metadata loading.

Reads image dimensions from file headers with Pillow so annotations from
formats that do not store a size (YOLO, some JSON files) can be converted
to absolute coordinates.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from PIL import Image, UnidentifiedImageError

from annotation_io.errors import UnsupportedImageError
from annotation_io.models import ImageAnnotation, ImageMetaData
from annotation_io.results import ErrorCollector, MetadataLoadResult, OperationType, timed
from annotation_io.runner import Progress, map_files, run_guarded

logger = logging.getLogger(__name__)


def read_image_metadata(path: Union[str, Path]) -> ImageMetaData:
    """
    Read file name, folder and size of an image without decoding its pixels.

    Raises:
        UnsupportedImageError: if Pillow cannot identify the file
        OSError: if the file cannot be opened
    """
    path = Path(path)
    try:
        with Image.open(path) as img:
            width, height = img.size
            depth = len(img.getbands())
    except UnidentifiedImageError:
        raise UnsupportedImageError(f"Unsupported image file: {path.name}")
    return ImageMetaData(
        file_name=path.name,
        folder_name=path.parent.name,
        width=float(width),
        height=float(height),
        depth=depth,
    )


def load_image_metadata(
    paths: Iterable[Union[str, Path]],
    progress: Optional[Progress] = None,
    max_workers: Optional[int] = None,
) -> MetadataLoadResult:
    """
    Read metadata of many images in parallel.

    Args:
        paths: Image file paths
        progress: Optional ``Progress`` sink
        max_workers: Thread pool size (defaults to config)

    Returns:
        MetadataLoadResult mapping readable file names to their metadata
    """
    return timed(_load_metadata, [Path(p) for p in paths], progress, max_workers)


def _load_metadata(paths: list[Path], progress: Optional[Progress], max_workers: Optional[int]) -> MetadataLoadResult:
    errors = ErrorCollector()

    def work(path: Path) -> Optional[ImageMetaData]:
        meta, _ = run_guarded(path.name, errors, read_image_metadata, path)
        return meta

    results = map_files(paths, work, True, max_workers, progress)

    metadata = {}
    for i in range(len(paths)):
        meta = results.get(i)
        if meta is not None:
            metadata[meta.file_name] = meta

    logger.info(f"Loaded metadata for {len(metadata)}/{len(paths)} image(s)")
    return MetadataLoadResult(
        operation=OperationType.METADATA_LOAD,
        success_count=len(metadata),
        errors=errors.entries(),
        metadata=metadata,
    )


def fill_missing_dimensions(
    annotations: list[ImageAnnotation],
    metadata_by_name: dict[str, ImageMetaData],
) -> list[str]:
    """
    Complete image metadata of annotations that lack dimensions.

    Returns:
        File names that are still missing dimensions
    """
    missing = []
    for annotation in annotations:
        if annotation.image_meta.has_details:
            continue
        meta = metadata_by_name.get(annotation.file_name)
        if meta is None:
            missing.append(annotation.file_name)
            continue
        annotation.image_meta = annotation.image_meta.with_details(
            meta.width, meta.height, meta.depth,
            folder_name=annotation.image_meta.folder_name or meta.folder_name,
        )
    return missing
