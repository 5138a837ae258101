"""
JSON codec.

The whole batch is one UTF-8 file holding an array of image entries::

    [
      {
        "image": {"fileName": "a.jpg", "folderName": "imgs", "width": 640, "height": 480, "depth": 3},
        "objects": [
          {
            "name": "car",
            "color": "#FF0000",
            "bndbox": {"minX": 0.1, "minY": 0.2, "maxX": 0.3, "maxY": 0.4},
            "tags": ["parked"],
            "parts": [{"name": "wheel", "polygon": [0.1, 0.3, 0.12, 0.35, 0.14, 0.3]}]
          }
        ]
      }
    ]

Coordinates are relative. Unlike the other formats nothing is lost on a
round trip. The older nested ``"category": {"name", "color"}`` form is
accepted when reading.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Optional, Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from annotation_io.codec import AnnotationCodec, LoadContext, SaveContext
from annotation_io.colors import parse_color
from annotation_io.config import JSON_DECIMALS, JSON_DEFAULT_FILE_NAME
from annotation_io.coordinates import format_decimal
from annotation_io.errors import InvalidAnnotationFormatError
from annotation_io.models import (
    BoundingShape,
    BoxShape,
    ImageAnnotation,
    ImageMetaData,
    MIN_POLYGON_POINTS,
    PolygonShape,
)

logger = logging.getLogger(__name__)

UnitFloat = Annotated[float, Field(strict=True, ge=0.0, le=1.0)]


class JsonBndBox(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    x_min: UnitFloat = Field(alias="minX")
    y_min: UnitFloat = Field(alias="minY")
    x_max: UnitFloat = Field(alias="maxX")
    y_max: UnitFloat = Field(alias="maxY")


class JsonObject(BaseModel):
    name: str
    color: Optional[str] = None
    bndbox: Optional[JsonBndBox] = None
    polygon: Optional[list[float]] = None
    tags: list[str] = Field(default_factory=list)
    parts: list["JsonObject"] = Field(default_factory=list)


JsonObject.model_rebuild()


class JsonImage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(alias="fileName")
    folder_name: Optional[str] = Field(default=None, alias="folderName")
    width: Optional[float] = None
    height: Optional[float] = None
    depth: Optional[int] = None


class JsonImageAnnotation(BaseModel):
    image: JsonImage
    objects: list[JsonObject]


_POLYGON_VALUES = TypeAdapter(list[UnitFloat])
_BOX_ALIASES = {"x_min": "minX", "y_min": "minY", "x_max": "maxX", "y_max": "maxY"}


def _round(value: float) -> float:
    return float(format_decimal(value, JSON_DECIMALS))


class JsonCodec(AnnotationCodec):
    """Reads and writes the single-file JSON format."""

    name = "JSON"
    file_suffix = ".json"
    parallel = False
    single_file = True

    # ---- loading ----

    def parse_file(self, path: Path, context: LoadContext) -> list[ImageAnnotation]:
        try:
            document = json.loads(path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise InvalidAnnotationFormatError(f"Malformed JSON: {e}")

        if not isinstance(document, list):
            raise InvalidAnnotationFormatError("Top-level element must be an array.")

        annotations = []
        for entry in document:
            try:
                annotation = self._parse_entry(entry, path.name, context)
            except InvalidAnnotationFormatError as e:
                context.errors.add(path.name, e.message)
                continue
            if annotation is not None:
                annotations.append(annotation)
        return annotations

    def _parse_entry(self, entry: Any, file_name: str, context: LoadContext) -> Optional[ImageAnnotation]:
        if not isinstance(entry, dict) or not isinstance(entry.get("image"), dict):
            raise InvalidAnnotationFormatError("Missing image element.")
        image = entry["image"]
        image_name = image.get("fileName")
        if not isinstance(image_name, str) or not image_name.strip():
            raise InvalidAnnotationFormatError("Missing image fileName element.")
        if image_name not in context.files_to_load:
            logger.debug(f"{file_name}: skipping annotation for image not loaded: {image_name}")
            return None

        objects = entry.get("objects")
        if not isinstance(objects, list):
            raise InvalidAnnotationFormatError(f"Missing objects element in annotation for image {image_name}.")

        meta = context.complete_metadata(self._parse_image(image, image_name))
        shapes = []
        for obj in objects:
            shape = self._parse_object_logged(obj, image_name, file_name, context)
            if shape is not None:
                shapes.append(shape)

        if not shapes:
            return None
        return ImageAnnotation(image_meta=meta, shapes=shapes)

    def _parse_image(self, image: dict, image_name: str) -> ImageMetaData:
        # Older files nest the size under "details"
        source = image.get("details") if isinstance(image.get("details"), dict) else image
        folder = source.get("folderName", image.get("folderName", ""))
        width = source.get("width")
        height = source.get("height")
        depth = source.get("depth")

        def number_or_none(value):
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
                return value
            return None

        depth = depth if isinstance(depth, int) and not isinstance(depth, bool) else None
        return ImageMetaData(
            file_name=image_name,
            folder_name=folder if isinstance(folder, str) else "",
            width=number_or_none(width),
            height=number_or_none(height),
            depth=depth,
        )

    def _parse_object_logged(
        self, obj: Any, image_name: str, file_name: str, context: LoadContext
    ) -> Optional[BoundingShape]:
        try:
            return self._parse_object(obj, image_name, file_name, context)
        except InvalidAnnotationFormatError as e:
            context.errors.add(file_name, e.message)
            return None

    def _parse_object(self, obj: Any, image_name: str, file_name: str, context: LoadContext) -> BoundingShape:
        suffix = f"in annotation for image {image_name}."
        if not isinstance(obj, dict):
            raise InvalidAnnotationFormatError(f"Invalid object element {suffix}")

        holder = obj.get("category") if isinstance(obj.get("category"), dict) else obj
        name = holder.get("name")
        if not isinstance(name, str) or not name.strip():
            raise InvalidAnnotationFormatError(f"Missing category name element {suffix}")
        name = name.strip()

        color = holder.get("color")
        if color is not None:
            try:
                color = parse_color(color)
            except ValueError:
                raise InvalidAnnotationFormatError(f"Invalid color element {suffix}")

        has_box = "bndbox" in obj
        has_polygon = "polygon" in obj
        if has_box and has_polygon:
            raise InvalidAnnotationFormatError(f"Object contains both bndbox and polygon elements {suffix}")
        if not has_box and not has_polygon:
            raise InvalidAnnotationFormatError(f"Missing bndbox or polygon element {suffix}")

        if has_box:
            bounds = self._parse_bndbox(obj["bndbox"], suffix)
        else:
            points = self._parse_polygon(obj["polygon"], suffix)

        tags = obj.get("tags", [])
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise InvalidAnnotationFormatError(f"Invalid tags element {suffix}")
        tags = [t.strip() for t in tags if t.strip()]

        parts = obj.get("parts", [])
        if not isinstance(parts, list):
            raise InvalidAnnotationFormatError(f"Invalid parts element {suffix}")

        category = context.registry.resolve(name, color)
        if has_box:
            shape = BoxShape(*bounds, category=category, tags=tags)
        else:
            shape = PolygonShape(points=points, category=category, tags=tags)

        for part in parts:
            part_shape = self._parse_object_logged(part, image_name, file_name, context)
            if part_shape is not None:
                shape.parts.append(part_shape)
        return shape

    def _parse_bndbox(self, value: Any, suffix: str) -> tuple[float, float, float, float]:
        if not isinstance(value, dict):
            raise InvalidAnnotationFormatError(f"Invalid bndbox element {suffix}")
        try:
            box = JsonBndBox.model_validate(value)
        except ValidationError as e:
            error = e.errors()[0]
            field_name = error["loc"][0] if error["loc"] else ""
            element = _BOX_ALIASES.get(field_name, field_name)
            if error["type"] == "missing":
                raise InvalidAnnotationFormatError(f"Missing {element} element in bndbox element {suffix}")
            raise InvalidAnnotationFormatError(
                f"Invalid coordinate value for {element} element in bndbox element {suffix}"
            )
        if box.x_min > box.x_max or box.y_min > box.y_max:
            raise InvalidAnnotationFormatError(f"Invalid bndbox element {suffix}")
        return box.x_min, box.y_min, box.x_max, box.y_max

    def _parse_polygon(self, value: Any, suffix: str) -> list[float]:
        if not isinstance(value, list) or len(value) < 2 * MIN_POLYGON_POINTS or len(value) % 2 != 0:
            raise InvalidAnnotationFormatError(f"Invalid number of coordinates in polygon element {suffix}")
        try:
            return _POLYGON_VALUES.validate_python(value)
        except ValidationError:
            raise InvalidAnnotationFormatError(f"Invalid coordinate value(s) in polygon element {suffix}")

    # ---- saving ----

    def output_path(self, annotation: Optional[ImageAnnotation], destination: Path) -> Path:
        if destination.suffix.lower() == self.file_suffix:
            return destination
        return destination / JSON_DEFAULT_FILE_NAME

    def to_model(self, annotation: ImageAnnotation) -> JsonImageAnnotation:
        meta = annotation.image_meta
        image = JsonImage(
            file_name=meta.file_name,
            folder_name=meta.folder_name or None,
            width=meta.width,
            height=meta.height,
            depth=meta.depth,
        )
        return JsonImageAnnotation(image=image, objects=[self._object_model(s) for s in annotation.shapes])

    def _object_model(self, shape: BoundingShape) -> JsonObject:
        obj = JsonObject(
            name=shape.category.name,
            color=shape.category.color,
            tags=list(shape.tags),
            parts=[self._object_model(p) for p in shape.parts],
        )
        if isinstance(shape, BoxShape):
            obj.bndbox = JsonBndBox(
                x_min=_round(shape.x_min),
                y_min=_round(shape.y_min),
                x_max=_round(shape.x_max),
                y_max=_round(shape.y_max),
            )
        else:
            obj.polygon = [_round(v) for v in shape.points]
        return obj

    def dumps(self, annotations: list[ImageAnnotation]) -> str:
        document = [
            self.to_model(a).model_dump(by_alias=True, exclude_none=True) for a in annotations
        ]
        return json.dumps(document, indent=2)

    def save_all(self, destination: Path, context: SaveContext) -> Path:
        path = self.output_path(None, destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.dumps(context.data.annotations), encoding="utf-8")
        return path
