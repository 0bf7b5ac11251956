"""Tests for model catalogue loading.

Tests both the Pydantic models and the shipped models.yaml file.
"""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from neuroreport.config.model_catalogue import (
    ModelCatalogue,
    ModelCatalogueLoader,
    SectionModels,
    default_model_catalogue,
    load_model_catalogue,
)
from neuroreport.models import ModelTier, SectionKind


@pytest.fixture
def valid_catalogue_dict():
    """Fixture providing a valid catalogue dictionary."""
    return {
        "version": "2.0",
        "sections": {
            "domain_summary": {
                "temperature": 0.2,
                "primary": ["small-a", "small-b"],
                "fallback": ["medium-a"],
            },
            "integrated_summary": {
                "temperature": 0.35,
                "primary": ["medium-a"],
                "fallback": ["large-a"],
            },
            "comprehensive_summary": {
                "temperature": 0.3,
                "primary": ["large-a"],
            },
        },
    }


class TestSectionModels:
    """Tests for SectionModels."""

    def test_tiers(self):
        section = SectionModels(primary=["a", "b"], fallback=["c"])

        assert section.tier(ModelTier.PRIMARY) == ["a", "b"]
        assert section.tier(ModelTier.FALLBACK) == ["c"]
        assert section.total_models == 3

    def test_model_ids_are_stripped(self):
        section = SectionModels(primary=["  a  "])

        assert section.primary == ["a"]

    def test_empty_section_rejected(self):
        with pytest.raises(ValidationError, match="at least one"):
            SectionModels()

    def test_duplicate_model_rejected(self):
        with pytest.raises(ValidationError, match="more than once"):
            SectionModels(primary=["a"], fallback=["a"])

    def test_blank_model_rejected(self):
        with pytest.raises(ValidationError):
            SectionModels(primary=["a", " "])

    def test_temperature_bounds(self):
        with pytest.raises(ValidationError):
            SectionModels(primary=["a"], temperature=3.0)


class TestModelCatalogue:
    """Tests for ModelCatalogue."""

    def test_valid(self, valid_catalogue_dict):
        catalogue = ModelCatalogue(**valid_catalogue_dict)

        assert catalogue.version == "2.0"
        assert catalogue.models_for(SectionKind.DOMAIN_SUMMARY).primary == [
            "small-a",
            "small-b",
        ]
        assert catalogue.all_model_ids() == ["small-a", "small-b", "medium-a", "large-a"]

    def test_missing_section_rejected(self, valid_catalogue_dict):
        del valid_catalogue_dict["sections"]["comprehensive_summary"]

        with pytest.raises(ValidationError, match="comprehensive_summary"):
            ModelCatalogue(**valid_catalogue_dict)

    def test_default_catalogue(self):
        """Test the built-in local model tiers."""
        catalogue = default_model_catalogue()

        domain = catalogue.models_for(SectionKind.DOMAIN_SUMMARY)
        assert domain.primary[0] == "gemma3:4b-it-qat"
        assert domain.temperature == pytest.approx(0.2)
        assert catalogue.models_for(
            SectionKind.INTEGRATED_SUMMARY
        ).temperature == pytest.approx(0.35)
        assert catalogue.models_for(
            SectionKind.COMPREHENSIVE_SUMMARY
        ).temperature == pytest.approx(0.3)


class TestModelCatalogueLoader:
    """Tests for ModelCatalogueLoader."""

    def test_load(self, tmp_path, valid_catalogue_dict):
        path = tmp_path / "models.yaml"
        path.write_text(yaml.dump(valid_catalogue_dict))

        loader = ModelCatalogueLoader(path)
        catalogue = loader.load()

        assert loader.catalogue is catalogue
        assert catalogue.models_for(SectionKind.INTEGRATED_SUMMARY).fallback == [
            "large-a"
        ]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ModelCatalogueLoader(tmp_path / "missing.yaml").load()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "models.yaml"
        path.write_text("sections: [unclosed")

        with pytest.raises(yaml.YAMLError):
            ModelCatalogueLoader(path).load()

    def test_invalid_content(self, tmp_path):
        path = tmp_path / "models.yaml"
        path.write_text(yaml.dump({"sections": {"domain_summary": {"primary": []}}}))

        with pytest.raises(ValidationError):
            ModelCatalogueLoader(path).load()

    def test_catalogue_before_load(self, tmp_path):
        with pytest.raises(RuntimeError, match="not loaded"):
            _ = ModelCatalogueLoader(tmp_path / "models.yaml").catalogue

    def test_load_model_catalogue_falls_back(self, tmp_path):
        catalogue = load_model_catalogue(tmp_path / "missing.yaml")

        assert catalogue == default_model_catalogue()


class TestShippedCatalogue:
    """Tests for the models.yaml shipped in config/."""

    @pytest.fixture
    def config_path(self) -> Path:
        return Path(__file__).parent.parent.parent / "config" / "models.yaml"

    def test_shipped_catalogue_loads(self, config_path):
        catalogue = ModelCatalogueLoader(config_path).load()

        assert catalogue == default_model_catalogue()
