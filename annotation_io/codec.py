"""
Common interface implemented by every annotation format codec.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from annotation_io.categories import CategoryRegistry
from annotation_io.models import ImageAnnotation, ImageAnnotationData, ImageMetaData
from annotation_io.results import ErrorCollector


@dataclass
class LoadContext:
    """State shared by all workers of one import."""
    directory: Path
    files_to_load: frozenset[str]
    registry: CategoryRegistry
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    # Metadata of the loaded images, by file name
    image_metadata: dict[str, ImageMetaData] = field(default_factory=dict)

    def complete_metadata(self, meta: ImageMetaData) -> ImageMetaData:
        """Fill in dimensions the annotation file did not provide."""
        if meta.has_details:
            return meta
        known = self.image_metadata.get(meta.file_name)
        if known is None or not known.has_details:
            return meta
        return meta.with_details(
            known.width, known.height, known.depth,
            folder_name=meta.folder_name or known.folder_name,
        )


@dataclass
class SaveContext:
    """State shared by all workers of one save."""
    destination: Path
    data: ImageAnnotationData
    errors: ErrorCollector = field(default_factory=ErrorCollector)


class AnnotationCodec:
    """
    Base class for format codecs.

    A codec instance is created per operation, so directory-level state
    prepared in ``prepare_load``/``prepare_save`` can live on the instance.
    """

    name: str = ""
    file_suffix: str = ""
    # Whether files can be parsed/written by several worker threads
    parallel: bool = True
    # Whether the whole batch is written to one file
    single_file: bool = False

    def list_files(self, directory: Path) -> list[Path]:
        """Candidate annotation files directly inside ``directory``, sorted by name."""
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix.lower() == self.file_suffix
        )

    def prepare_load(self, directory: Path, context: LoadContext) -> None:
        """Directory-level step run before any file is parsed."""

    def parse_file(self, path: Path, context: LoadContext) -> list[ImageAnnotation]:
        """
        Parse one annotation file.

        Raises:
            AnnotationFileError: if the file as a whole cannot be used
        """
        raise NotImplementedError

    def prepare_save(self, destination: Path, context: SaveContext) -> None:
        """Directory-level step run before any annotation is written."""

    def output_path(self, annotation: ImageAnnotation, destination: Path) -> Path:
        raise NotImplementedError

    def write_annotation(self, annotation: ImageAnnotation, destination: Path, context: SaveContext) -> None:
        """Write one annotation file."""
        raise NotImplementedError

    def save_all(self, destination: Path, context: SaveContext) -> Optional[Path]:
        """Write the whole batch at once (single-file formats only)."""
        raise NotImplementedError
