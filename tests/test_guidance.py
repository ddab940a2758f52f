"""Tests for the sensitive-content guidance catalog."""

import pytest

from drawtale.story_generation.guidance import (
    FALLBACK_CATEGORY,
    GuidanceCatalog,
    load_guidance_catalog,
)


class TestBundledCatalog:
    """Tests for the catalog shipped with the package."""

    def test_has_all_categories(self, guidance_catalog):
        """Every supported category plus the fallback is present."""
        assert len(guidance_catalog) == 25
        for category in ("war", "bullying", "medical_trauma", "cyberbullying", FALLBACK_CATEGORY):
            assert category in guidance_catalog

    def test_entries_have_all_blocks(self, guidance_catalog):
        for category in guidance_catalog:
            entry = guidance_catalog.for_category(category)
            assert entry.principles
            assert entry.arc_guidance
            assert entry.avoidance

    def test_unknown_category_falls_back(self, guidance_catalog):
        """Unrecognised keys resolve to the generic entry."""
        assert guidance_catalog.for_category("volcanoes").category == FALLBACK_CATEGORY

    def test_lookup_is_case_insensitive(self, guidance_catalog):
        assert guidance_catalog.for_category(" Bullying ").category == "bullying"

    def test_no_category_means_no_guidance(self, guidance_catalog):
        assert guidance_catalog.for_category(None) is None


class TestCatalogLoading:
    """Tests for loading custom catalogs."""

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "guidance.yaml"
        path.write_text(
            "other:\n  principles: p\n  arc_guidance: a\n  avoidance: v\n",
            encoding="utf-8",
        )
        catalog = load_guidance_catalog(path)
        assert catalog.categories == ("other",)

    def test_missing_fallback_is_rejected(self):
        with pytest.raises(ValueError, match="other"):
            GuidanceCatalog.from_mapping({"war": {"principles": "p", "arc_guidance": "a", "avoidance": "v"}})

    def test_missing_field_is_rejected(self):
        with pytest.raises(ValueError, match="avoidance"):
            GuidanceCatalog.from_mapping({"other": {"principles": "p", "arc_guidance": "a"}})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "guidance.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_guidance_catalog(path)
