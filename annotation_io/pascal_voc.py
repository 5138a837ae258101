"""
PASCAL-VOC XML codec.

One ``<annotation>`` document per image. Coordinates are absolute pixels
on disk and relative in memory; the ``<size>`` header of the same file is
used for the conversion. The format has no notion of free-form tags, so
only pose, truncated/occluded/difficult flags and actions survive a save.
"""

import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional

from annotation_io.codec import AnnotationCodec, LoadContext, SaveContext
from annotation_io.config import VOC_ANNOTATION_SUFFIX, VOC_DECIMALS
from annotation_io.coordinates import check_points_within, format_decimal, points_to_relative
from annotation_io.errors import (
    AnnotationToNonExistentImageError,
    InvalidAnnotationFormatError,
)
from annotation_io.models import (
    BoundingShape,
    BoxShape,
    ImageAnnotation,
    ImageMetaData,
    MIN_POLYGON_POINTS,
    PolygonShape,
)

logger = logging.getLogger(__name__)

FLAG_TAGS = ("difficult", "occluded", "truncated")
POSE_PREFIX = "pose:"
ACTION_PREFIX = "action:"
DEFAULT_POSE = "Unspecified"
# XML element names without namespace prefix
ELEMENT_NAME = re.compile(r"[^\W\d][\w.\-]*")


def _first_text(root: ET.Element, tag: str) -> str:
    element = root.find(f".//{tag}")
    if element is None:
        raise InvalidAnnotationFormatError(f"Missing element: {tag}")
    return (element.text or "").strip()


def _float_child(parent: ET.Element, tag: str) -> float:
    element = parent.find(tag)
    if element is None:
        raise InvalidAnnotationFormatError(f"Missing element: {tag}")
    try:
        return float((element.text or "").strip())
    except ValueError:
        raise InvalidAnnotationFormatError(f"Invalid value in element: {tag}")


def _flag(element: ET.Element) -> bool:
    try:
        return int((element.text or "").strip()) == 1
    except ValueError:
        raise InvalidAnnotationFormatError(f"Invalid value in element: {element.tag}")


class PascalVocCodec(AnnotationCodec):
    """Reads and writes PASCAL-VOC ``.xml`` files."""

    name = "PASCAL-VOC"
    file_suffix = ".xml"

    # ---- loading ----

    def parse_file(self, path: Path, context: LoadContext) -> list[ImageAnnotation]:
        try:
            root = ET.parse(path).getroot()
        except ET.ParseError as e:
            raise InvalidAnnotationFormatError(f"Malformed XML: {e}")

        if root.tag != "annotation":
            raise InvalidAnnotationFormatError(f"Unexpected root element: {root.tag}")

        meta = self._parse_header(root)
        if meta.file_name not in context.files_to_load:
            raise AnnotationToNonExistentImageError(
                "The image file does not belong to the currently loaded images."
            )

        shapes = []
        for element in root.findall("object"):
            shape = self._parse_object_logged(element, meta, path.name, context)
            if shape is not None:
                shapes.append(shape)

        if not shapes:
            logger.debug(f"{path.name}: no valid objects")
            return []
        return [ImageAnnotation(image_meta=meta, shapes=shapes)]

    def _parse_header(self, root: ET.Element) -> ImageMetaData:
        folder = _first_text(root, "folder")
        file_name = _first_text(root, "filename")
        try:
            width = float(_first_text(root, "width"))
            height = float(_first_text(root, "height"))
            depth = int(_first_text(root, "depth"))
        except ValueError:
            raise InvalidAnnotationFormatError("Invalid image size element.")
        if width <= 0 or height <= 0:
            raise InvalidAnnotationFormatError("Image width and height must be positive.")
        return ImageMetaData(file_name=file_name, folder_name=folder, width=width, height=height, depth=depth)

    def _parse_object_logged(
        self, element: ET.Element, meta: ImageMetaData, file_name: str, context: LoadContext
    ) -> Optional[BoundingShape]:
        try:
            return self._parse_object(element, meta, file_name, context)
        except InvalidAnnotationFormatError as e:
            context.errors.add(file_name, e.message)
            return None

    def _parse_object(
        self, element: ET.Element, meta: ImageMetaData, file_name: str, context: LoadContext
    ) -> BoundingShape:
        name = None
        box = None
        polygon = None
        tags = []

        for child in element:
            tag = child.tag
            if tag == "part":
                continue
            if tag == "name":
                name = (child.text or "").strip()
                if not name:
                    raise InvalidAnnotationFormatError("Blank object name")
            elif tag == "bndbox":
                box = self._parse_bndbox(child, meta)
            elif tag == "polygon":
                polygon = self._parse_polygon(child, meta)
            elif tag == "pose":
                pose = (child.text or "").strip().lower()
                if pose and pose != "unspecified":
                    tags.append(f"pose: {pose}")
            elif tag in FLAG_TAGS:
                if _flag(child):
                    tags.append(tag)
            elif tag == "actions":
                for action in child:
                    if _flag(action):
                        tags.append(f"action: {action.tag.lower()}")

        if name is None:
            raise InvalidAnnotationFormatError("Missing element: name")
        if box is not None and polygon is not None:
            raise InvalidAnnotationFormatError(
                'Invalid "object"-element: Contains "bndbox"- and "polygon"-elements.'
            )
        if box is None and polygon is None:
            raise InvalidAnnotationFormatError(
                'Invalid "object"-element: Missing "bndbox"- or "polygon"-element.'
            )

        category = context.registry.resolve(name)
        if box is not None:
            shape = BoxShape(*box, category=category, tags=tags)
        else:
            shape = PolygonShape(points=polygon, category=category, tags=tags)

        for part in element.findall("part"):
            part_shape = self._parse_object_logged(part, meta, file_name, context)
            if part_shape is not None:
                shape.parts.append(part_shape)
        return shape

    def _parse_bndbox(self, element: ET.Element, meta: ImageMetaData) -> tuple[float, float, float, float]:
        x_min = _float_child(element, "xmin")
        x_max = _float_child(element, "xmax")
        y_min = _float_child(element, "ymin")
        y_max = _float_child(element, "ymax")

        if x_min > x_max or y_min > y_max:
            raise InvalidAnnotationFormatError("Invalid bounding-box coordinates.")
        check_points_within(
            [x_min, y_min, x_max, y_max], meta.width, meta.height,
            "Bounding-box coordinates not within image bounds.",
        )
        rx_min, ry_min, rx_max, ry_max = points_to_relative(
            [x_min, y_min, x_max, y_max], meta.width, meta.height
        )
        return rx_min, ry_min, rx_max, ry_max

    def _parse_polygon(self, element: ET.Element, meta: ImageMetaData) -> list[float]:
        xs = element.findall("x")
        ys = element.findall("y")
        if len(xs) < MIN_POLYGON_POINTS or len(xs) != len(ys):
            raise InvalidAnnotationFormatError('Invalid "polygon"-element.')

        points = []
        try:
            for x, y in zip(xs, ys):
                points.append(float((x.text or "").strip()))
                points.append(float((y.text or "").strip()))
        except ValueError:
            raise InvalidAnnotationFormatError('Invalid "polygon"-element.')

        check_points_within(points, meta.width, meta.height, "Polygon coordinates not within image bounds.")
        return points_to_relative(points, meta.width, meta.height)

    # ---- saving ----

    def output_path(self, annotation: ImageAnnotation, destination: Path) -> Path:
        return destination / f"{Path(annotation.file_name).stem}{VOC_ANNOTATION_SUFFIX}.xml"

    def write_annotation(self, annotation: ImageAnnotation, destination: Path, context: SaveContext) -> None:
        meta = annotation.image_meta
        if not meta.has_details:
            raise InvalidAnnotationFormatError("Image dimensions unknown.")

        root = ET.Element("annotation")
        ET.SubElement(root, "folder").text = meta.folder_name
        ET.SubElement(root, "filename").text = meta.file_name
        size = ET.SubElement(root, "size")
        ET.SubElement(size, "width").text = format_decimal(meta.width, VOC_DECIMALS)
        ET.SubElement(size, "height").text = format_decimal(meta.height, VOC_DECIMALS)
        ET.SubElement(size, "depth").text = str(meta.depth if meta.depth is not None else 3)

        for shape in annotation.shapes:
            self._append_shape(root, "object", shape, meta)

        tree = ET.ElementTree(root)
        ET.indent(tree, space="    ")
        tree.write(self.output_path(annotation, destination), encoding="utf-8", xml_declaration=True)

    def _append_shape(self, parent: ET.Element, tag: str, shape: BoundingShape, meta: ImageMetaData) -> None:
        element = ET.SubElement(parent, tag)
        ET.SubElement(element, "name").text = shape.category.name

        lowered = [t.strip().lower() for t in shape.tags]
        pose = DEFAULT_POSE
        actions = []
        for t in lowered:
            if t.startswith(POSE_PREFIX):
                value = t[len(POSE_PREFIX):].strip()
                if value:
                    pose = value.capitalize()
            elif t.startswith(ACTION_PREFIX):
                value = t[len(ACTION_PREFIX):].strip()
                action = "_".join(value.split())
                if ELEMENT_NAME.fullmatch(action):
                    actions.append(action)
                elif action:
                    logger.debug(f"Dropping action tag not usable as an element name: {t}")

        ET.SubElement(element, "difficult").text = "1" if "difficult" in lowered else "0"
        ET.SubElement(element, "occluded").text = "1" if "occluded" in lowered else "0"
        ET.SubElement(element, "pose").text = pose
        ET.SubElement(element, "truncated").text = "1" if "truncated" in lowered else "0"

        if actions:
            actions_element = ET.SubElement(element, "actions")
            for action in actions:
                ET.SubElement(actions_element, action).text = "1"

        if isinstance(shape, BoxShape):
            x_min, y_min, x_max, y_max = shape.absolute_bounds(meta.width, meta.height)
            bndbox = ET.SubElement(element, "bndbox")
            ET.SubElement(bndbox, "xmin").text = format_decimal(x_min, VOC_DECIMALS)
            ET.SubElement(bndbox, "xmax").text = format_decimal(x_max, VOC_DECIMALS)
            ET.SubElement(bndbox, "ymin").text = format_decimal(y_min, VOC_DECIMALS)
            ET.SubElement(bndbox, "ymax").text = format_decimal(y_max, VOC_DECIMALS)
        else:
            points = shape.absolute_points(meta.width, meta.height)
            polygon = ET.SubElement(element, "polygon")
            for i in range(0, len(points), 2):
                ET.SubElement(polygon, "x").text = format_decimal(points[i], VOC_DECIMALS)
                ET.SubElement(polygon, "y").text = format_decimal(points[i + 1], VOC_DECIMALS)

        for part in shape.parts:
            self._append_shape(element, "part", part, meta)
