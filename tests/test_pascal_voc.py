"""
Tests for the PASCAL-VOC codec.
"""

import tempfile
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from annotation_io import (
    AnnotationFormat,
    BoxShape,
    ImageAnnotation,
    ImageAnnotationData,
    ImageMetaData,
    ObjectCategory,
    PolygonShape,
    load_annotations,
    save_annotations,
)


def voc_document(filename="a.jpg", objects="", width=100, height=100, header=True):
    file_element = f"<filename>{filename}</filename>" if filename is not None else ""
    size = (
        f"<size><width>{width}</width><height>{height}</height><depth>3</depth></size>"
        if header else ""
    )
    return f"<annotation><folder>f</folder>{file_element}{size}{objects}</annotation>"


BOX_OBJECT = (
    "<object><name>x</name>"
    "<bndbox><xmin>10</xmin><xmax>20</xmax><ymin>10</ymin><ymax>20</ymax></bndbox>"
    "</object>"
)


@pytest.fixture
def temp_dir():
    """Create a temporary annotation directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def write(directory: Path, name: str, text: str) -> Path:
    path = directory / name
    path.write_text(text, encoding="utf-8")
    return path


class TestPascalVocLoad:
    """Tests for loading PASCAL-VOC files."""

    def test_single_box(self, temp_dir):
        """A 10..20 box on a 100x100 image becomes 0.1..0.2 relative."""
        write(temp_dir, "a.xml", voc_document(objects=BOX_OBJECT))

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        assert result.success_count == 1
        assert result.errors == []
        annotation = result.annotations[0]
        assert annotation.image_meta.width == 100
        assert annotation.image_meta.folder_name == "f"
        box = annotation.shapes[0]
        assert isinstance(box, BoxShape)
        assert (box.x_min, box.y_min, box.x_max, box.y_max) == pytest.approx((0.1, 0.1, 0.2, 0.2))
        assert box.category.name == "x"

    def test_missing_filename_is_file_error(self, temp_dir):
        """One good file and one without <filename>: one success, one error."""
        write(temp_dir, "a.xml", voc_document(objects=BOX_OBJECT))
        write(temp_dir, "b.xml", voc_document(filename=None, objects=BOX_OBJECT))

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg", "b.jpg"}, {})

        assert result.success_count == 1
        assert len(result.errors) == 1
        assert result.errors[0].file_name == "b.xml"
        assert "filename" in result.errors[0].message

    def test_image_not_loaded(self, temp_dir):
        write(temp_dir, "a.xml", voc_document(objects=BOX_OBJECT))

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"other.jpg"}, {})

        assert result.success_count == 0
        assert result.errors[0].message == "The image file does not belong to the currently loaded images."

    def test_malformed_xml(self, temp_dir):
        write(temp_dir, "a.xml", "<annotation><folder>")

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        assert result.success_count == 0
        assert len(result.errors) == 1

    def test_bad_object_skipped(self, temp_dir):
        """A bad object is reported; the remaining objects of the file are kept."""
        objects = BOX_OBJECT + (
            "<object><name>y</name>"
            "<bndbox><xmin>10</xmin><xmax>200</xmax><ymin>10</ymin><ymax>20</ymax></bndbox>"
            "</object>"
            "<object><name>z</name></object>"
            "<object><name>  </name><bndbox><xmin>1</xmin><xmax>2</xmax><ymin>1</ymin><ymax>2</ymax></bndbox></object>"
        )
        write(temp_dir, "a.xml", voc_document(objects=objects))

        categories = {}
        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, categories)

        assert result.success_count == 1
        assert len(result.annotations[0].shapes) == 1
        messages = [e.message for e in result.errors]
        assert len(messages) == 3
        assert 'Invalid "object"-element: Missing "bndbox"- or "polygon"-element.' in messages
        assert "Blank object name" in messages
        assert set(categories) == {"x"}

    def test_box_and_polygon_conflict(self, temp_dir):
        objects = (
            "<object><name>x</name>"
            "<bndbox><xmin>10</xmin><xmax>20</xmax><ymin>10</ymin><ymax>20</ymax></bndbox>"
            "<polygon><x>1</x><y>1</y><x>5</x><y>5</y><x>1</x><y>5</y></polygon>"
            "</object>"
        )
        write(temp_dir, "a.xml", voc_document(objects=objects))

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        assert result.success_count == 0
        assert result.errors[0].message == 'Invalid "object"-element: Contains "bndbox"- and "polygon"-elements.'

    def test_polygon_and_tags(self, temp_dir):
        objects = (
            "<object><name>person</name><pose>Left</pose><truncated>1</truncated>"
            "<occluded>0</occluded><difficult>1</difficult>"
            "<actions><jumping>1</jumping><running>0</running></actions>"
            "<polygon><x>0</x><y>0</y><x>50</x><y>0</y><x>50</x><y>100</y></polygon>"
            "</object>"
        )
        write(temp_dir, "a.xml", voc_document(objects=objects))

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        shape = result.annotations[0].shapes[0]
        assert isinstance(shape, PolygonShape)
        assert shape.points == pytest.approx([0, 0, 0.5, 0, 0.5, 1.0])
        assert shape.tags == ["pose: left", "truncated", "difficult", "action: jumping"]

    def test_uneven_polygon(self, temp_dir):
        objects = "<object><name>x</name><polygon><x>1</x><y>1</y><x>5</x></polygon></object>"
        write(temp_dir, "a.xml", voc_document(objects=objects))

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        assert result.errors[0].message == 'Invalid "polygon"-element.'

    def test_two_point_polygon_rejected(self, temp_dir):
        objects = "<object><name>x</name><polygon><x>1</x><y>1</y><x>5</x><y>5</y></polygon></object>"
        write(temp_dir, "a.xml", voc_document(objects=objects))

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        assert result.success_count == 0
        assert result.errors[0].message == 'Invalid "polygon"-element.'

    def test_nested_parts(self, temp_dir):
        """Parts two levels deep are parsed; a bad part is dropped and reported."""
        objects = (
            "<object><name>car</name>"
            "<bndbox><xmin>0</xmin><xmax>100</xmax><ymin>0</ymin><ymax>100</ymax></bndbox>"
            "<part><name>door</name>"
            "<bndbox><xmin>10</xmin><xmax>50</xmax><ymin>10</ymin><ymax>50</ymax></bndbox>"
            "<part><name>handle</name>"
            "<bndbox><xmin>20</xmin><xmax>30</xmax><ymin>20</ymin><ymax>30</ymax></bndbox>"
            "</part></part>"
            "<part><name>wheel</name></part>"
            "</object>"
        )
        write(temp_dir, "a.xml", voc_document(objects=objects))

        counts = {}
        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {}, counts)

        car = result.annotations[0].shapes[0]
        assert len(car.parts) == 1
        door = car.parts[0]
        assert door.category.name == "door"
        handle = door.parts[0]
        assert handle.category.name == "handle"
        assert handle.x_min == pytest.approx(0.2)
        assert len(result.errors) == 1
        assert counts == {"car": 1, "door": 1, "handle": 1}

    def test_file_without_valid_objects(self, temp_dir):
        write(temp_dir, "a.xml", voc_document())

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        assert result.success_count == 0
        assert result.errors == []
        assert result.annotations == []

    def test_missing_directory(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir / "missing", {"a.jpg"}, {})


class TestPascalVocSave:
    """Tests for saving PASCAL-VOC files."""

    def _data(self):
        car = ObjectCategory("car", "#FF0000")
        box = BoxShape(0.1, 0.2, 0.5, 0.6, category=car,
                       tags=["pose: rear", "occluded", "action: parking", "custom"])
        box.set_parts([PolygonShape([0.2, 0.3, 0.3, 0.3, 0.3, 0.4], category=ObjectCategory("door"))])
        meta = ImageMetaData("a.jpg", "imgs", 200, 100, 3)
        return ImageAnnotationData.from_annotations([ImageAnnotation(meta, [box])])

    def test_writes_expected_document(self, temp_dir):
        result = save_annotations(AnnotationFormat.PASCAL_VOC, self._data(), temp_dir)

        assert result.success_count == 1
        root = ET.parse(temp_dir / "a_A.xml").getroot()
        assert root.findtext("filename") == "a.jpg"
        assert root.findtext("size/width") == "200"
        obj = root.find("object")
        assert obj.findtext("pose") == "Rear"
        assert obj.findtext("occluded") == "1"
        assert obj.findtext("difficult") == "0"
        assert obj.findtext("actions/parking") == "1"
        assert obj.findtext("bndbox/xmin") == "20"
        assert obj.findtext("bndbox/ymax") == "60"
        assert obj.find("part/polygon") is not None

    def test_round_trip_drops_unknown_tags(self, temp_dir):
        data = self._data()
        save_annotations(AnnotationFormat.PASCAL_VOC, data, temp_dir)

        result = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        loaded = result.annotations[0].shapes[0]
        original = data.annotations[0].shapes[0]
        assert loaded.tags == ["occluded", "pose: rear", "action: parking"]
        assert (loaded.x_min, loaded.y_min, loaded.x_max, loaded.y_max) == pytest.approx(
            (original.x_min, original.y_min, original.x_max, original.y_max)
        )
        assert loaded.parts[0] == original.parts[0]

    def test_unknown_dimensions_is_error(self, temp_dir):
        data = ImageAnnotationData.from_annotations([
            ImageAnnotation(ImageMetaData("b.jpg"), [BoxShape(0, 0, 1, 1, category=ObjectCategory("x"))]),
        ])

        result = save_annotations(AnnotationFormat.PASCAL_VOC, data, temp_dir)

        assert result.success_count == 0
        assert result.errors[0].file_name == "b.jpg"

    def test_action_tags_that_are_not_element_names_dropped(self, temp_dir):
        """Saved files always load back, even with unusual action tags."""
        tags = ["action: 2 hands", "action: two hands", "action: a<b", "truncated"]
        box = BoxShape(0.1, 0.1, 0.5, 0.5, category=ObjectCategory("person"), tags=tags)
        data = ImageAnnotationData.from_annotations([
            ImageAnnotation(ImageMetaData("a.jpg", "imgs", 100, 100, 3), [box]),
        ])

        saved = save_annotations(AnnotationFormat.PASCAL_VOC, data, temp_dir)
        loaded = load_annotations(AnnotationFormat.PASCAL_VOC, temp_dir, {"a.jpg"}, {})

        assert saved.success_count == 1
        assert loaded.success_count == 1
        assert loaded.errors == []
        assert loaded.annotations[0].shapes[0].tags == ["truncated", "action: two_hands"]
