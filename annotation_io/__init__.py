"""
Annotation I/O - Import and export of image annotations in PASCAL-VOC, YOLO and JSON formats
"""

from annotation_io.models import (
    ObjectCategory, BoxShape, PolygonShape, BoundingShape, visit,
    ImageMetaData, ImageAnnotation, ImageAnnotationData,
)
from annotation_io.categories import CategoryRegistry
from annotation_io.errors import (
    AnnotationIOError, AnnotationFileError, InvalidAnnotationFormatError,
    AnnotationToNonExistentImageError, AnnotationAssociationError,
    DirectoryLevelError, UnsupportedImageError,
)
from annotation_io.results import OperationType, IOErrorEntry, IOResult, ImportResult, MetadataLoadResult
from annotation_io.formats import AnnotationFormat
from annotation_io.runner import Progress, load_annotations, save_annotations
from annotation_io.metadata import read_image_metadata, load_image_metadata, fill_missing_dimensions

__all__ = [
    "ObjectCategory", "BoxShape", "PolygonShape", "BoundingShape", "visit",
    "ImageMetaData", "ImageAnnotation", "ImageAnnotationData",
    "CategoryRegistry",
    "AnnotationIOError", "AnnotationFileError", "InvalidAnnotationFormatError",
    "AnnotationToNonExistentImageError", "AnnotationAssociationError",
    "DirectoryLevelError", "UnsupportedImageError",
    "OperationType", "IOErrorEntry", "IOResult", "ImportResult", "MetadataLoadResult",
    "AnnotationFormat",
    "Progress", "load_annotations", "save_annotations",
    "read_image_metadata", "load_image_metadata", "fill_missing_dimensions",
]
