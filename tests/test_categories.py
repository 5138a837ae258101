"""
Tests for the category registry.
"""

import re
from concurrent.futures import ThreadPoolExecutor

from annotation_io.categories import CategoryRegistry
from annotation_io.colors import parse_color, random_color
from annotation_io.models import ObjectCategory

import pytest


class TestCategoryRegistry:
    """Tests for CategoryRegistry."""

    def test_existing_color_kept(self):
        registry = CategoryRegistry({"cat": ObjectCategory("cat", "#123456")})

        category = registry.resolve("cat", "#FFFFFF")

        assert category.color == "#123456"
        assert registry.counts() == {"cat": 1}

    def test_new_category_uses_given_color(self):
        registry = CategoryRegistry()

        assert registry.get_or_create("dog", "#ABCDEF").color == "#ABCDEF"
        assert registry.counts() == {}

    def test_new_category_gets_random_color(self):
        registry = CategoryRegistry()

        assert re.fullmatch(r"#[0-9A-F]{6}", registry.resolve("bird").color)

    def test_accepts_iterable_and_counts(self):
        registry = CategoryRegistry([ObjectCategory("cat", "#000000")], {"cat": 4})
        registry.resolve("cat")

        assert registry.counts() == {"cat": 5}

    def test_concurrent_resolve_single_instance(self):
        """Many threads resolving the same name see one instance and exact counts."""
        registry = CategoryRegistry()

        with ThreadPoolExecutor(max_workers=8) as executor:
            categories = list(executor.map(lambda _: registry.resolve("car"), range(500)))

        assert all(c is categories[0] for c in categories)
        assert registry.counts() == {"car": 500}

    def test_publish_into(self):
        existing = {"cat": ObjectCategory("cat", "#000000")}
        counts = {"cat": 1}
        registry = CategoryRegistry(existing, counts)
        registry.resolve("cat")
        registry.resolve("dog")

        registry.publish_into(existing, counts)

        assert set(existing) == {"cat", "dog"}
        assert counts == {"cat": 2, "dog": 1}

    def test_snapshots_are_copies(self):
        registry = CategoryRegistry()
        registry.resolve("cat")
        registry.categories().clear()

        assert "cat" in registry
        assert len(registry) == 1


class TestColors:
    """Tests for color helpers."""

    def test_random_color_format(self):
        for _ in range(20):
            assert re.fullmatch(r"#[0-9A-F]{6}", random_color())

    def test_parse_hex_and_names(self):
        assert parse_color("#ff0000") == "#FF0000"
        assert parse_color("blue") == "#0000FF"

    @pytest.mark.parametrize("value", ["", "not-a-color", "#12"])
    def test_parse_invalid(self, value):
        with pytest.raises(ValueError):
            parse_color(value)
