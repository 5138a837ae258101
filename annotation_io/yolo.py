"""
YOLO plain-text codec.

Each image has a ``<base>.txt`` file with one shape per line::

    <category index> <center x> <center y> <width> <height>
    <category index> <x1> <y1> <x2> <y2> <x3> <y3> ...

All values are relative. Category names live in the ``object.data``
sidecar, one per line, the line number being the index. Tags and nested
parts cannot be expressed and are dropped on save.
"""

import logging
from pathlib import Path
from typing import Optional

from annotation_io.codec import AnnotationCodec, LoadContext, SaveContext
from annotation_io.config import (
    DOUBLE_EQUAL_TOLERANCE,
    YOLO_DECIMALS,
    YOLO_DEFAULT_IMAGE_SUFFIX,
    YOLO_OBJECT_DATA_FILE,
)
from annotation_io.coordinates import all_within, format_decimal
from annotation_io.errors import (
    AnnotationAssociationError,
    DirectoryLevelError,
    InvalidAnnotationFormatError,
)
from annotation_io.models import (
    BoundingShape,
    BoxShape,
    ImageAnnotation,
    ImageAnnotationData,
    ImageMetaData,
    PolygonShape,
)

logger = logging.getLogger(__name__)


class _LineError(Exception):
    pass


def _clamp_unit(value: float) -> float:
    """Snap values within tolerance of [0, 1] onto the interval."""
    if -DOUBLE_EQUAL_TOLERANCE <= value < 0.0:
        return 0.0
    if 1.0 < value <= 1.0 + DOUBLE_EQUAL_TOLERANCE:
        return 1.0
    return value


def read_category_names(path: Path) -> list[str]:
    """Read ``object.data``: stripped, non-blank lines in order."""
    text = path.read_text(encoding="utf-8")
    return [line.strip() for line in text.splitlines() if line.strip()]


class YoloCodec(AnnotationCodec):
    """Reads and writes YOLO ``.txt`` files plus the ``object.data`` sidecar."""

    name = "YOLO"
    file_suffix = ".txt"

    def __init__(self):
        self.category_names: list[str] = []
        self._images_by_base: dict[str, list[str]] = {}
        self._category_index: dict[str, int] = {}

    # ---- loading ----

    def prepare_load(self, directory: Path, context: LoadContext) -> None:
        object_data = directory / YOLO_OBJECT_DATA_FILE
        if not object_data.is_file():
            raise DirectoryLevelError(
                YOLO_OBJECT_DATA_FILE, f'Does not exist in annotation folder "{directory}".'
            )
        try:
            names = read_category_names(object_data)
        except (OSError, UnicodeDecodeError) as e:
            raise DirectoryLevelError(YOLO_OBJECT_DATA_FILE, f"Could not be read: {e}")
        if not names:
            raise DirectoryLevelError(YOLO_OBJECT_DATA_FILE, "Does not contain any category names.")
        self.category_names = names

        images_by_base: dict[str, list[str]] = {}
        for file_name in context.files_to_load:
            images_by_base.setdefault(Path(file_name).stem, []).append(file_name)
        self._images_by_base = images_by_base
        logger.debug(f"Loaded {len(names)} YOLO categories from {object_data}")

    def list_files(self, directory: Path) -> list[Path]:
        return [p for p in super().list_files(directory) if p.name != YOLO_OBJECT_DATA_FILE]

    def associated_image(self, path: Path) -> str:
        """
        Find the loaded image that ``path`` annotates.

        Raises:
            AnnotationAssociationError: if there is no unique match
        """
        base = path.stem
        candidates = self._images_by_base.get(base, [])
        if not candidates:
            raise AnnotationAssociationError("No associated image file.")
        if len(candidates) > 1:
            preferred = base + YOLO_DEFAULT_IMAGE_SUFFIX
            if preferred in candidates:
                return preferred
            raise AnnotationAssociationError("More than one associated image file.")
        return candidates[0]

    def parse_file(self, path: Path, context: LoadContext) -> list[ImageAnnotation]:
        image_name = self.associated_image(path)
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise InvalidAnnotationFormatError("File is not valid UTF-8 text.")

        shapes = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                shape = self._parse_line(line, line_number, context)
            except _LineError as e:
                context.errors.add(path.name, str(e))
                continue
            shapes.append(shape)

        if not shapes:
            return []
        meta = context.complete_metadata(ImageMetaData(file_name=image_name))
        return [ImageAnnotation(image_meta=meta, shapes=shapes)]

    def _parse_line(self, line: str, line_number: int, context: LoadContext) -> BoundingShape:
        tokens = line.split()
        try:
            index = int(tokens[0])
        except ValueError:
            raise _LineError(f"Missing or invalid category index on line {line_number}.")

        num_categories = len(self.category_names)
        if index < 0 or index >= num_categories:
            raise _LineError(
                f"Invalid category index {index} (of {num_categories} categories) on line {line_number}."
            )

        values = tokens[1:]
        if len(values) != 4 and (len(values) < 6 or len(values) % 2 != 0):
            raise _LineError(f"Missing or invalid bounding-box bounds on line {line_number}.")
        try:
            numbers = [float(v) for v in values]
        except ValueError:
            raise _LineError(f"Missing or invalid bounding-box bounds on line {line_number}.")

        if not all_within(numbers, 0.0, 1.0):
            raise _LineError(f"Bounds ratio not within [0, 1] on line {line_number}.")

        name = self.category_names[index]
        if len(numbers) == 4:
            center_x, center_y, width, height = numbers
            corners = [
                _clamp_unit(center_x - width / 2),
                _clamp_unit(center_y - height / 2),
                _clamp_unit(center_x + width / 2),
                _clamp_unit(center_y + height / 2),
            ]
            if not all_within(corners, 0.0, 1.0):
                raise _LineError(f"Invalid bounding-box coordinates on line {line_number}.")
            return BoxShape(*corners, category=context.registry.resolve(name))

        return PolygonShape(points=numbers, category=context.registry.resolve(name))

    # ---- saving ----

    def prepare_save(self, destination: Path, context: SaveContext) -> None:
        data = context.data
        used = ImageAnnotationData.from_annotations(data.annotations).category_shape_counts
        counts = dict(data.category_shape_counts)
        for name, count in used.items():
            counts[name] = max(counts.get(name, 0), count)
        names = sorted(name for name, count in counts.items() if count > 0)

        try:
            (destination / YOLO_OBJECT_DATA_FILE).write_text(
                "".join(f"{name}\n" for name in names), encoding="utf-8"
            )
        except OSError as e:
            raise DirectoryLevelError(YOLO_OBJECT_DATA_FILE, f"Could not be written: {e}")
        self.category_names = names
        self._category_index = {name: i for i, name in enumerate(names)}

    def output_path(self, annotation: ImageAnnotation, destination: Path) -> Path:
        return destination / f"{Path(annotation.file_name).stem}.txt"

    def format_shape(self, shape: BoundingShape) -> Optional[str]:
        """Format one top-level shape as a line."""
        index = self._category_index.get(shape.category.name)
        if index is None:
            return None
        if isinstance(shape, BoxShape):
            values = [shape.center_x, shape.center_y, shape.width, shape.height]
        else:
            values = shape.points
        return " ".join([str(index)] + [format_decimal(v, YOLO_DECIMALS) for v in values])

    def write_annotation(self, annotation: ImageAnnotation, destination: Path, context: SaveContext) -> None:
        lines = []
        for shape in annotation.shapes:
            line = self.format_shape(shape)
            if line is None:
                raise InvalidAnnotationFormatError(f"Unknown category: {shape.category.name}")
            lines.append(line)
        self.output_path(annotation, destination).write_text(
            "".join(f"{line}\n" for line in lines), encoding="utf-8"
        )
