"""
Supported annotation formats.
"""

from enum import Enum

from annotation_io.codec import AnnotationCodec
from annotation_io.json_format import JsonCodec
from annotation_io.pascal_voc import PascalVocCodec
from annotation_io.yolo import YoloCodec


class AnnotationFormat(Enum):
    PASCAL_VOC = "pascal_voc"
    YOLO = "yolo"
    JSON = "json"

    def codec(self) -> AnnotationCodec:
        """Create a fresh codec instance for one operation."""
        return _CODECS[self]()

    @classmethod
    def parse(cls, value) -> "AnnotationFormat":
        """Accept an enum member or its (case-insensitive) name/value."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        for member in cls:
            if key in (member.value, member.name.lower()):
                return member
        if key == "voc":
            return cls.PASCAL_VOC
        raise ValueError(f"Unknown annotation format: {value}")


_CODECS = {
    AnnotationFormat.PASCAL_VOC: PascalVocCodec,
    AnnotationFormat.YOLO: YoloCodec,
    AnnotationFormat.JSON: JsonCodec,
}
