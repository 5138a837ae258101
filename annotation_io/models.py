"""
Annotation data model.

An image annotation owns a list of shapes. Each shape is either an
axis-aligned box or a polygon, carries a category, free-form tags, and
an owned list of nested part shapes. All coordinates are relative to
the image size.
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Union, Callable, Iterator, Any

from annotation_io.coordinates import almost_equal, points_to_absolute

MIN_POLYGON_POINTS = 3


@dataclass(frozen=True)
class ObjectCategory:
    """A named object category. Identity is the name; the color is display data."""
    name: str
    color: str = field(default="#000000", compare=False)


class _ShapeTree:
    """Behaviour shared by box and polygon shapes."""

    def set_parts(self, parts: list["BoundingShape"]) -> None:
        """Replace the nested parts of this shape."""
        self.parts = list(parts)

    def iter_tree(self) -> Iterator["BoundingShape"]:
        """Yield this shape and all of its nested parts, depth first."""
        yield self
        for part in self.parts:
            yield from part.iter_tree()

    def _same_base(self, other) -> bool:
        return (
            type(self) is type(other)
            and self.category == other.category
            and self.tags == other.tags
            and self.parts == other.parts
        )

    def __hash__(self):
        return hash((type(self).__name__, self.category, tuple(self.tags)))


@dataclass(eq=False)
class BoxShape(_ShapeTree):
    """Axis-aligned rectangle in relative coordinates."""
    x_min: float
    y_min: float
    x_max: float
    y_max: float
    category: ObjectCategory
    tags: list[str] = field(default_factory=list)
    parts: list["BoundingShape"] = field(default_factory=list)

    def __post_init__(self):
        if self.x_min > self.x_max or self.y_min > self.y_max:
            raise ValueError(
                f"Invalid box bounds: ({self.x_min}, {self.y_min}, {self.x_max}, {self.y_max})"
            )

    @property
    def width(self) -> float:
        return self.x_max - self.x_min

    @property
    def height(self) -> float:
        return self.y_max - self.y_min

    @property
    def center_x(self) -> float:
        return self.x_min + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y_min + self.height / 2

    def absolute_bounds(self, image_width: float, image_height: float) -> tuple[float, float, float, float]:
        """Return (x_min, y_min, x_max, y_max) in pixels."""
        return (
            self.x_min * image_width,
            self.y_min * image_height,
            self.x_max * image_width,
            self.y_max * image_height,
        )

    def __eq__(self, other):
        if not isinstance(other, BoxShape):
            return NotImplemented
        return (
            self._same_base(other)
            and almost_equal(self.x_min, other.x_min)
            and almost_equal(self.y_min, other.y_min)
            and almost_equal(self.x_max, other.x_max)
            and almost_equal(self.y_max, other.y_max)
        )

    __hash__ = _ShapeTree.__hash__


@dataclass(eq=False)
class PolygonShape(_ShapeTree):
    """Polygon given as a flat list of relative points [x1, y1, x2, y2, ...]."""
    points: list[float]
    category: ObjectCategory
    tags: list[str] = field(default_factory=list)
    parts: list["BoundingShape"] = field(default_factory=list)

    def __post_init__(self):
        if len(self.points) < 2 * MIN_POLYGON_POINTS or len(self.points) % 2 != 0:
            raise ValueError(
                f"Polygon needs an even number of at least {2 * MIN_POLYGON_POINTS} coordinates, "
                f"got {len(self.points)}"
            )
        self.points = [float(v) for v in self.points]

    @property
    def num_points(self) -> int:
        return len(self.points) // 2

    def absolute_points(self, image_width: float, image_height: float) -> list[float]:
        """Return the points scaled to pixels."""
        return points_to_absolute(self.points, image_width, image_height)

    def __eq__(self, other):
        if not isinstance(other, PolygonShape):
            return NotImplemented
        return (
            self._same_base(other)
            and len(self.points) == len(other.points)
            and all(almost_equal(a, b) for a, b in zip(self.points, other.points))
        )

    __hash__ = _ShapeTree.__hash__


BoundingShape = Union[BoxShape, PolygonShape]


def visit(
    shape: BoundingShape,
    on_box: Callable[[BoxShape], Any],
    on_polygon: Callable[[PolygonShape], Any],
) -> Any:
    """Dispatch on the concrete shape kind."""
    if isinstance(shape, BoxShape):
        return on_box(shape)
    if isinstance(shape, PolygonShape):
        return on_polygon(shape)
    raise TypeError(f"Unknown shape type: {type(shape).__name__}")


@dataclass
class ImageMetaData:
    """File name and (possibly unknown) dimensions of an image."""
    file_name: str
    folder_name: str = ""
    width: Optional[float] = None
    height: Optional[float] = None
    depth: Optional[int] = None

    @property
    def has_details(self) -> bool:
        return self.width is not None and self.height is not None

    def with_details(self, width: float, height: float, depth: Optional[int] = None,
                     folder_name: Optional[str] = None) -> "ImageMetaData":
        """Return a copy with dimensions filled in."""
        return replace(
            self,
            width=width,
            height=height,
            depth=depth if depth is not None else self.depth,
            folder_name=folder_name if folder_name is not None else self.folder_name,
        )


@dataclass
class ImageAnnotation:
    """All shapes drawn on one image."""
    image_meta: ImageMetaData
    shapes: list[BoundingShape] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return self.image_meta.file_name

    def iter_shapes(self) -> Iterator[BoundingShape]:
        """Yield every shape including nested parts."""
        for shape in self.shapes:
            yield from shape.iter_tree()


@dataclass
class ImageAnnotationData:
    """A batch of annotations together with the categories they use."""
    annotations: list[ImageAnnotation] = field(default_factory=list)
    category_shape_counts: dict[str, int] = field(default_factory=dict)
    categories: dict[str, ObjectCategory] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ImageAnnotationData":
        return cls()

    @classmethod
    def from_annotations(cls, annotations: list[ImageAnnotation]) -> "ImageAnnotationData":
        """Build counts and the category map by walking every shape tree."""
        counts: dict[str, int] = {}
        categories: dict[str, ObjectCategory] = {}
        for annotation in annotations:
            for shape in annotation.iter_shapes():
                name = shape.category.name
                categories.setdefault(name, shape.category)
                counts[name] = counts.get(name, 0) + 1
        return cls(annotations=list(annotations), category_shape_counts=counts, categories=categories)
