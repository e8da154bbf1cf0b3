"""Anchor proposal and classification tests."""

from __future__ import annotations

import pytest

from linkplanner.engine.anchors import anchor_mix, anchor_variants, classify_anchor
from linkplanner.engine.types import AnchorClass

from .conftest import make_page


@pytest.fixture()
def target():
    return make_page("/shoes", "Running Shoes Guide", keywords=["trail shoes"], meta_title="Best Running Shoes")


@pytest.mark.parametrize(
    ("anchor", "expected"),
    [
        ("running shoes guide", AnchorClass.EXACT),
        ("Trail  Shoes", AnchorClass.EXACT),
        ("best running shoes", AnchorClass.EXACT),
        ("cheap shoes", AnchorClass.PARTIAL),
        ("click here", AnchorClass.GENERIC),
        ("the guide to it", AnchorClass.PARTIAL),
        ("to the", AnchorClass.GENERIC),
    ],
)
def test_classify_anchor(target, anchor, expected):
    assert classify_anchor(anchor, target) is expected


def test_variants_start_with_title_and_skip_duplicates(target):
    assert anchor_variants(target) == ["Running Shoes Guide", "trail shoes", "Best Running Shoes"]


def test_variants_truncate_long_titles():
    page = make_page("/long", "One Two Three Four Five Six Seven Eight Nine Ten")

    variants = anchor_variants(page, max_tokens=5)

    assert variants[0] == "One Two Three Four Five"
    assert "One Two Three Four" in variants
    assert "Three Four Five" in variants


def test_variants_drop_stopword_only_phrases():
    assert anchor_variants(make_page("/x", "The Of And")) == []


def test_anchor_mix_percentages():
    assert anchor_mix(["exact", "partial", "generic", "generic"]) == (25.0, 25.0, 50.0)
    assert anchor_mix([]) == (0.0, 0.0, 0.0)
