"""Tests for the questionnaire definition."""

from collections import Counter
from dataclasses import FrozenInstanceError

import pytest

from kursor_api.survey import TRAIT_CATEGORIES, get_item, list_items


class TestSurveyItems:
    """Tests for list_items and get_item."""

    def test_forty_two_items_seven_per_category(self):
        """Test every category has seven items."""
        items = list_items()
        assert len(items) == 42
        counts = Counter(item.trait_category for item in items)
        assert counts == {category: 7 for category in TRAIT_CATEGORIES}

    def test_ids_unique_and_stable(self):
        """Test ids are unique and identical across calls."""
        first = [item.id for item in list_items()]
        second = [item.id for item in list_items()]
        assert first == second
        assert len(set(first)) == len(first)

    def test_realistic_items_are_ids_one_to_seven(self):
        """Test the first block of ids is Realistic."""
        assert [item.id for item in list_items() if item.trait_category == "R"] == list(range(1, 8))

    def test_items_are_immutable(self):
        """Test that survey items cannot be mutated."""
        item = list_items()[0]
        with pytest.raises(FrozenInstanceError):
            item.prompt_text = "changed"  # type: ignore[misc]
        assert list_items()[0].prompt_text == "I like to work on cars."

    def test_get_item(self):
        """Test lookup by id."""
        assert get_item(9).trait_category == "I"
        assert get_item(999) is None
