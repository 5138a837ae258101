"""
Exceptions raised by the annotation codecs.

File-level problems are raised as ``AnnotationFileError`` subclasses and
turned into one error entry by the batch runner. Object- and line-level
problems never raise out of a codec; they are collected instead.
"""

from typing import Optional, Any


class AnnotationIOError(Exception):
    """Base exception for annotation import/export."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class AnnotationFileError(AnnotationIOError):
    """A single annotation file could not be used."""


class InvalidAnnotationFormatError(AnnotationFileError):
    """File content does not follow the expected format."""


class AnnotationToNonExistentImageError(AnnotationFileError):
    """Annotation refers to an image that is not currently loaded."""


class AnnotationAssociationError(AnnotationFileError):
    """Annotation file cannot be matched to exactly one image."""


class DirectoryLevelError(AnnotationIOError):
    """Fatal problem with a whole annotation folder (e.g. missing sidecar)."""

    def __init__(self, file_name: str, message: str):
        super().__init__(message, {"file_name": file_name})
        self.file_name = file_name

    def __str__(self) -> str:
        return self.message


class UnsupportedImageError(AnnotationIOError):
    """File is not an image Pillow can read."""
