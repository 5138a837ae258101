"""
Thread-safe category registry used while importing annotations.

Codec workers resolve category names concurrently. The registry makes sure
that one ``ObjectCategory`` instance exists per name and that shape counts
are incremented atomically. The merged state is handed back to the caller
once, after all workers have finished.
"""

import logging
import threading
from typing import Optional, Iterable, Mapping, MutableMapping, Union

from annotation_io.colors import random_color
from annotation_io.models import ObjectCategory

logger = logging.getLogger(__name__)


class CategoryRegistry:
    """Canonical name -> category map with per-category shape counts."""

    def __init__(
        self,
        existing: Union[Mapping[str, ObjectCategory], Iterable[ObjectCategory], None] = None,
        counts: Optional[Mapping[str, int]] = None,
    ):
        self._lock = threading.Lock()
        self._categories: dict[str, ObjectCategory] = {}
        self._counts: dict[str, int] = {}

        if existing is not None:
            values = existing.values() if isinstance(existing, Mapping) else existing
            for category in values:
                self._categories.setdefault(category.name, category)
        if counts:
            self._counts.update(counts)

        self._base_names = set(self._categories)
        self._base_counts = dict(self._counts)

    def get_or_create(self, name: str, color: Optional[str] = None) -> ObjectCategory:
        """
        Return the category for ``name``, creating it if needed.

        An existing category keeps its color; ``color`` only applies to new ones.
        """
        with self._lock:
            return self._get_or_create_locked(name, color)

    def resolve(self, name: str, color: Optional[str] = None) -> ObjectCategory:
        """Return the category for ``name`` and count one more shape for it."""
        with self._lock:
            category = self._get_or_create_locked(name, color)
            self._counts[name] = self._counts.get(name, 0) + 1
            return category

    def increment(self, name: str) -> None:
        with self._lock:
            self._counts[name] = self._counts.get(name, 0) + 1

    def _get_or_create_locked(self, name: str, color: Optional[str]) -> ObjectCategory:
        category = self._categories.get(name)
        if category is None:
            category = ObjectCategory(name=name, color=color or random_color())
            self._categories[name] = category
            logger.debug(f"Created category '{name}' ({category.color})")
        return category

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._categories

    def __len__(self) -> int:
        with self._lock:
            return len(self._categories)

    def categories(self) -> dict[str, ObjectCategory]:
        """Snapshot of the category map."""
        with self._lock:
            return dict(self._categories)

    def counts(self) -> dict[str, int]:
        """Snapshot of the shape counts."""
        with self._lock:
            return dict(self._counts)

    def accept(self, used_counts: Mapping[str, int]) -> None:
        """
        Keep only what accepted shapes use.

        Counts become the initial counts plus ``used_counts``; categories
        created for shapes that were later discarded are removed.
        """
        with self._lock:
            counts = dict(self._base_counts)
            for name, count in used_counts.items():
                counts[name] = counts.get(name, 0) + count
            self._counts = counts
            self._categories = {
                name: category for name, category in self._categories.items()
                if name in self._base_names or name in used_counts
            }

    def publish_into(
        self,
        categories: Optional[MutableMapping[str, ObjectCategory]],
        counts: Optional[MutableMapping[str, int]],
    ) -> None:
        """Copy the merged state into caller-owned maps."""
        with self._lock:
            if categories is not None:
                for name, category in self._categories.items():
                    categories.setdefault(name, category)
            if counts is not None:
                counts.clear()
                counts.update(self._counts)
