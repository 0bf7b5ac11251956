"""Model catalogue configuration.

This module loads the per-section model tiers used for narrative generation
from YAML files. Each section kind lists ordered primary models, ordered
fallback models and a default sampling temperature.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from neuroreport.config.settings import settings
from neuroreport.models import ModelTier, SectionKind

logger = logging.getLogger(__name__)


class SectionModels(BaseModel):
    """Model tiers for a single section kind.

    Attributes:
        primary: Preferred models, tried first in listed order
        fallback: Models tried after every primary model is spent
        temperature: Default sampling temperature for the section
    """

    primary: List[str] = Field(default_factory=list)
    fallback: List[str] = Field(default_factory=list)
    temperature: float = Field(0.2, ge=0.0, le=2.0)

    @field_validator("primary", "fallback")
    @classmethod
    def validate_model_ids(cls, v: List[str]) -> List[str]:
        """Strip model ids and reject blanks."""
        cleaned = [model_id.strip() for model_id in v]
        if any(not model_id for model_id in cleaned):
            raise ValueError("Model ids must be non-empty strings")
        return cleaned

    @model_validator(mode="after")
    def validate_tiers(self) -> "SectionModels":
        """Validate that the section has models and no id is listed twice."""
        combined = self.primary + self.fallback
        if not combined:
            raise ValueError("Section must list at least one primary or fallback model")
        duplicates = {m for m in combined if combined.count(m) > 1}
        if duplicates:
            raise ValueError(f"Models listed more than once: {sorted(duplicates)}")
        return self

    def tier(self, tier: ModelTier) -> List[str]:
        """Get the ordered model ids of one tier."""
        return list(self.primary if tier == ModelTier.PRIMARY else self.fallback)

    @property
    def total_models(self) -> int:
        return len(self.primary) + len(self.fallback)


class ModelCatalogue(BaseModel):
    """Complete model catalogue.

    Attributes:
        version: Configuration version
        sections: Model tiers keyed by section kind
    """

    version: str = "1.0"
    sections: Dict[SectionKind, SectionModels]

    @field_validator("sections")
    @classmethod
    def validate_sections(
        cls, v: Dict[SectionKind, SectionModels]
    ) -> Dict[SectionKind, SectionModels]:
        """Validate that every section kind has model tiers."""
        missing = set(SectionKind) - set(v.keys())
        if missing:
            raise ValueError(
                f"Missing section kinds in model catalogue: "
                f"{sorted(kind.value for kind in missing)}"
            )
        return v

    def models_for(self, section_kind: SectionKind) -> SectionModels:
        """Get the model tiers for a section kind."""
        return self.sections[section_kind]

    def all_model_ids(self) -> List[str]:
        """Every distinct model id in the catalogue, in first-seen order."""
        seen: Dict[str, None] = {}
        for section in self.sections.values():
            for model_id in section.primary + section.fallback:
                seen.setdefault(model_id, None)
        return list(seen)


class ModelCatalogueLoader:
    """Loader for model catalogue files.

    This class handles loading, parsing, and validating the model catalogue
    from YAML files.
    """

    def __init__(self, config_path: str | Path):
        """Initialize the catalogue loader.

        Args:
            config_path: Path to the model catalogue YAML file
        """
        self.config_path = Path(config_path)
        self._catalogue: Optional[ModelCatalogue] = None

    def load(self) -> ModelCatalogue:
        """Load and parse the catalogue file.

        Returns:
            Parsed and validated model catalogue

        Raises:
            FileNotFoundError: If the catalogue file doesn't exist
            pydantic.ValidationError: If the catalogue content is invalid
            yaml.YAMLError: If YAML parsing fails
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Model catalogue file not found: {self.config_path}"
            )

        logger.info(f"Loading model catalogue from {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f)

            self._catalogue = ModelCatalogue(**(raw_config or {}))
            logger.info(
                f"Successfully loaded model catalogue "
                f"(version {self._catalogue.version}, "
                f"{len(self._catalogue.all_model_ids())} models)"
            )
            return self._catalogue

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML model catalogue: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load model catalogue: {e}")
            raise

    @property
    def catalogue(self) -> ModelCatalogue:
        """Get the loaded catalogue.

        Raises:
            RuntimeError: If the catalogue hasn't been loaded yet
        """
        if self._catalogue is None:
            raise RuntimeError("Model catalogue not loaded. Call load() first.")
        return self._catalogue


def default_model_catalogue() -> ModelCatalogue:
    """Build the built-in catalogue of local models.

    Smaller models serve per-domain summaries; the integrated and
    comprehensive summaries use progressively larger models.
    """
    return ModelCatalogue(
        version="1.0",
        sections={
            SectionKind.DOMAIN_SUMMARY: SectionModels(
                temperature=0.2,
                primary=[
                    "gemma3:4b-it-qat",
                    "qwen3:4b-instruct-2507-q4_K_M",
                    "llama3.2:3b-instruct-q4_K_M",
                    "mistral:7b-instruct-v0.3-q4_K_M",
                ],
                fallback=[
                    "qwen3:8b-q4_K_M",
                    "phi3:medium-128k-q4_K_M",
                    "llama3:8b-instruct-q4_K_M",
                ],
            ),
            SectionKind.INTEGRATED_SUMMARY: SectionModels(
                temperature=0.35,
                primary=[
                    "gemma3:12b-it-qat",
                    "qwen3:8b-q8_0",
                    "llama3:8b-instruct-q8_0",
                    "mixtral:8x7b-instruct-q4_K_M",
                    "command-r:35b-v0.1-q4_K_M",
                ],
                fallback=[
                    "qwen3:14b-q4_K_M",
                    "solar:10.7b-instruct-q4_K_M",
                    "yi:34b-chat-q4_K_M",
                ],
            ),
            SectionKind.COMPREHENSIVE_SUMMARY: SectionModels(
                temperature=0.3,
                primary=[
                    "gemma3:27b-it-qat",
                    "gpt-oss:20b",
                    "qwen3:30b-a3b-instruct-2507-q4_K_M",
                    "llama3.1:70b-instruct-q4_0",
                    "command-r:35b-v0.1-q4_K_M",
                    "mixtral:8x22b-instruct-q4_0",
                ],
                fallback=[
                    "qwen3:32b-q4_K_M",
                    "yi:34b-chat-q4_K_M",
                    "nous-hermes-2-mixtral:8x7b-dpo-q4_K_M",
                ],
            ),
        },
    )


def load_model_catalogue(config_path: Optional[str | Path] = None) -> ModelCatalogue:
    """Load the catalogue from a file, or the built-in one when no file exists.

    Args:
        config_path: Catalogue path; defaults to settings.model_catalogue_path

    Returns:
        Loaded or built-in ModelCatalogue
    """
    if config_path is None:
        config_path = settings.model_catalogue_path

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"No model catalogue at {path}, using built-in catalogue")
        return default_model_catalogue()
    return ModelCatalogueLoader(path).load()
