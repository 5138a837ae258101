"""
Batch runner for annotation import and export.

Fans per-file work out over a thread pool, collects per-file errors, and
always returns a result object. Only a missing or unreadable target
directory raises.
"""

import logging
import threading
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterable, Mapping, MutableMapping, Optional, Union

from annotation_io.categories import CategoryRegistry
from annotation_io.codec import LoadContext, SaveContext
from annotation_io.config import MAX_WORKERS
from annotation_io.errors import AnnotationIOError, DirectoryLevelError
from annotation_io.formats import AnnotationFormat
from annotation_io.models import ImageAnnotation, ImageAnnotationData, ImageMetaData, ObjectCategory
from annotation_io.results import ErrorCollector, ImportResult, IOErrorEntry, IOResult, OperationType, timed

logger = logging.getLogger(__name__)


class Progress:
    """
    Thread-safe progress value in [0, 1].

    The value only moves forward. An optional listener is called with each
    new value from whichever thread advanced it.
    """

    def __init__(self, listener: Optional[Callable[[float], None]] = None):
        self._lock = threading.Lock()
        self._listener = listener
        self._total = 0
        self._done = 0
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def start(self, total: int) -> None:
        with self._lock:
            self._total = total
            self._done = 0
        if total == 0:
            self._set(1.0)

    def advance(self, steps: int = 1) -> None:
        with self._lock:
            self._done += steps
            value = self._done / self._total if self._total else 1.0
        self._set(value)

    def finish(self) -> None:
        self._set(1.0)

    def _set(self, value: float) -> None:
        with self._lock:
            value = min(1.0, value)
            if value <= self._value:
                return
            self._value = value
        if self._listener is not None:
            self._listener(value)


def _resolve_directory(path: Path) -> None:
    if not path.exists():
        raise FileNotFoundError(f"Directory not found: {path}")
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")


def run_guarded(file_name: str, errors: ErrorCollector, fn: Callable, *args):
    """Run per-file work, turning any failure into an error entry for ``file_name``."""
    try:
        return fn(*args), True
    except AnnotationIOError as e:
        logger.warning(f"{file_name}: {e.message}")
        errors.add(file_name, e.message)
    except OSError as e:
        logger.warning(f"{file_name}: {e}")
        errors.add(file_name, str(e))
    except Exception as e:
        logger.error(f"Unexpected error processing {file_name}: {e}")
        logger.error(traceback.format_exc())
        errors.add(file_name, f"Unexpected error: {e}")
    return None, False


def map_files(
    items: list,
    work: Callable,
    parallel: bool,
    max_workers: Optional[int],
    progress: Optional[Progress],
) -> dict[int, object]:
    """Run ``work(item)`` for every item and return results keyed by item position."""
    results = {}
    if progress is not None:
        progress.start(len(items))

    if not parallel or len(items) <= 1:
        for i, item in enumerate(items):
            results[i] = work(item)
            if progress is not None:
                progress.advance()
        return results

    with ThreadPoolExecutor(max_workers=max_workers or MAX_WORKERS) as executor:
        future_to_index = {executor.submit(work, item): i for i, item in enumerate(items)}
        for future in as_completed(future_to_index):
            results[future_to_index[future]] = future.result()
            if progress is not None:
                progress.advance()
    return results


def load_annotations(
    fmt: Union[AnnotationFormat, str],
    directory: Union[str, Path],
    files_to_load: Iterable[str],
    existing_categories: Union[MutableMapping[str, ObjectCategory], Iterable[ObjectCategory], None] = None,
    existing_counts: Optional[MutableMapping[str, int]] = None,
    progress: Optional[Progress] = None,
    max_workers: Optional[int] = None,
    image_metadata: Optional[Mapping[str, ImageMetaData]] = None,
) -> ImportResult:
    """
    Import annotations from a directory.

    Args:
        fmt: Annotation format to read
        directory: Folder containing the annotation files. For JSON this may
            also be the path of a single ``.json`` file.
        files_to_load: File names of the currently loaded images
        existing_categories: Categories already known to the caller. When a
            mutable mapping is given, newly created categories are added to it
            if at least one annotation was imported.
        existing_counts: Shape counts per category name, updated the same way
        progress: Optional progress sink
        max_workers: Thread pool size (defaults to config)
        image_metadata: Known metadata of the loaded images by file name. Used
            to complete annotations from formats that store no image size.

    Returns:
        ImportResult with the parsed annotations and per-file errors

    Raises:
        FileNotFoundError / NotADirectoryError: if the directory cannot be used
    """
    return timed(
        _load, AnnotationFormat.parse(fmt), Path(directory), files_to_load,
        existing_categories, existing_counts, progress, max_workers, image_metadata,
    )


def _load(
    fmt: AnnotationFormat,
    path: Path,
    files_to_load: Iterable[str],
    existing_categories,
    existing_counts,
    progress: Optional[Progress],
    max_workers: Optional[int],
    image_metadata: Optional[Mapping[str, ImageMetaData]],
) -> ImportResult:
    codec = fmt.codec()

    single_file = fmt is AnnotationFormat.JSON and path.is_file()
    directory = path.parent if single_file else path
    if not single_file:
        _resolve_directory(directory)

    registry = CategoryRegistry(existing_categories, existing_counts)
    context = LoadContext(
        directory=directory,
        files_to_load=frozenset(files_to_load),
        registry=registry,
        image_metadata=dict(image_metadata or {}),
    )

    try:
        codec.prepare_load(directory, context)
    except DirectoryLevelError as e:
        logger.warning(f"{codec.name} import aborted: {e.file_name}: {e.message}")
        if progress is not None:
            progress.finish()
        return ImportResult(
            operation=OperationType.IMPORT,
            success_count=0,
            errors=[IOErrorEntry(e.file_name, e.message)],
        )

    files = [path] if single_file else codec.list_files(directory)
    logger.info(f"Importing {len(files)} {codec.name} annotation file(s) from {directory}")

    def work(file_path: Path) -> list[ImageAnnotation]:
        logger.debug(f"Parsing {file_path.name}")
        annotations, _ = run_guarded(file_path.name, context.errors, codec.parse_file, file_path, context)
        return annotations or []

    results = map_files(files, work, codec.parallel, max_workers, progress)

    annotations = []
    seen = set()
    for i in range(len(files)):
        for annotation in results.get(i, []):
            if annotation.file_name in seen:
                context.errors.add(files[i].name, f"Duplicate annotation for image {annotation.file_name}.")
                continue
            seen.add(annotation.file_name)
            annotations.append(annotation)

    if annotations:
        # Duplicates were parsed too; count only the shapes that were kept
        registry.accept(ImageAnnotationData.from_annotations(annotations).category_shape_counts)
        if isinstance(existing_categories, MutableMapping) or existing_counts is not None:
            registry.publish_into(
                existing_categories if isinstance(existing_categories, MutableMapping) else None,
                existing_counts,
            )
        data = ImageAnnotationData(
            annotations=annotations,
            category_shape_counts=registry.counts(),
            categories=registry.categories(),
        )
    else:
        data = ImageAnnotationData.empty()

    result = ImportResult(
        operation=OperationType.IMPORT,
        success_count=len(annotations),
        errors=context.errors.entries(),
        data=data,
    )
    logger.info(
        f"{codec.name} import complete: {result.success_count} annotation(s), {result.error_count} error(s)"
    )
    return result


def save_annotations(
    fmt: Union[AnnotationFormat, str],
    data: ImageAnnotationData,
    destination: Union[str, Path],
    progress: Optional[Progress] = None,
    max_workers: Optional[int] = None,
) -> IOResult:
    """
    Export annotations.

    Args:
        fmt: Annotation format to write
        data: Annotations and category counts to save
        destination: Output folder. For JSON this may also be a ``.json`` file path.
        progress: Optional progress sink
        max_workers: Thread pool size (defaults to config)

    Returns:
        IOResult with the number of annotations written and per-file errors
    """
    return timed(_save, AnnotationFormat.parse(fmt), data, Path(destination), progress, max_workers)


def _save(
    fmt: AnnotationFormat,
    data: ImageAnnotationData,
    destination: Path,
    progress: Optional[Progress],
    max_workers: Optional[int],
) -> IOResult:
    codec = fmt.codec()
    context = SaveContext(destination=destination, data=data)
    total = len(data.annotations)

    if codec.single_file:
        if progress is not None:
            progress.start(1)
        target = codec.output_path(None, destination)
        _, ok = run_guarded(target.name, context.errors, codec.save_all, destination, context)
        if progress is not None:
            progress.advance()
        result = IOResult(
            operation=OperationType.SAVE,
            success_count=total if ok else 0,
            errors=context.errors.entries(),
        )
        logger.info(f"{codec.name} save complete: {result.success_count} annotation(s) written to {target}")
        return result

    destination.mkdir(parents=True, exist_ok=True)
    try:
        codec.prepare_save(destination, context)
    except DirectoryLevelError as e:
        logger.warning(f"{codec.name} save aborted: {e.file_name}: {e.message}")
        if progress is not None:
            progress.finish()
        return IOResult(
            operation=OperationType.SAVE,
            success_count=0,
            errors=[IOErrorEntry(e.file_name, e.message)],
        )

    def work(annotation: ImageAnnotation) -> bool:
        _, ok = run_guarded(
            annotation.file_name, context.errors, codec.write_annotation, annotation, destination, context
        )
        return ok

    results = map_files(data.annotations, work, codec.parallel, max_workers, progress)
    failed = sum(1 for ok in results.values() if not ok)

    result = IOResult(
        operation=OperationType.SAVE,
        success_count=total - failed,
        errors=context.errors.entries(),
    )
    logger.info(
        f"{codec.name} save complete: {result.success_count}/{total} annotation(s) written to {destination}"
    )
    return result
