"""Per-domain evidence rules.

Rules decide how much data a domain needs before it is written up. They are
configuration: the built-in defaults require one scoreable record and no
particular tests, and stricter policies come from a YAML file.
"""

import logging
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from neuroreport.config.settings import settings
from neuroreport.domains import DomainKind
from neuroreport.models import ScoreRecord

logger = logging.getLogger(__name__)


class DomainRule(BaseModel):
    """Minimum-evidence policy for one domain.

    Attributes:
        required_columns: ScoreRecord fields that must be populated on at
            least one scoreable record
        min_scoreable_rows: Minimum number of scoreable records
        required_test_allowlist: When set, at least one record's test_id must
            be in this set
    """

    model_config = ConfigDict(frozen=True)

    required_columns: FrozenSet[str] = Field(default_factory=frozenset)
    min_scoreable_rows: int = Field(1, ge=1)
    required_test_allowlist: Optional[FrozenSet[str]] = None

    @field_validator("required_columns")
    @classmethod
    def validate_required_columns(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        """Validate that required columns name ScoreRecord fields."""
        unknown = set(v) - set(ScoreRecord.model_fields)
        if unknown:
            raise ValueError(f"Unknown ScoreRecord fields: {sorted(unknown)}")
        return v

    @field_validator("required_test_allowlist")
    @classmethod
    def validate_allowlist(cls, v: Optional[FrozenSet[str]]) -> Optional[FrozenSet[str]]:
        """Lowercase test ids; an empty allow-list is rejected."""
        if v is None:
            return v
        if not v:
            raise ValueError("required_test_allowlist must not be empty when set")
        return frozenset(test_id.strip().lower() for test_id in v)


class DomainRulesConfig(BaseModel):
    """Rule overrides keyed by domain kind.

    Attributes:
        version: Configuration version
        rules: Rule per domain kind; kinds not listed use DomainRule()
    """

    version: str = "1.0"
    rules: Dict[DomainKind, DomainRule] = Field(default_factory=dict)

    def rule_for(self, kind: DomainKind) -> DomainRule:
        """Get the rule for a domain kind, or the default rule."""
        return self.rules.get(kind, DomainRule())


RulesLike = Union[DomainRulesConfig, Mapping[DomainKind, DomainRule], None]


def resolve_rule(rules: RulesLike, kind: DomainKind) -> DomainRule:
    """Look up a domain's rule from a config, a plain mapping or nothing."""
    if rules is None:
        return DomainRule()
    if isinstance(rules, DomainRulesConfig):
        return rules.rule_for(kind)
    return rules.get(kind, DomainRule())


class DomainRulesLoader:
    """Loader for domain rule files."""

    def __init__(self, config_path: str | Path):
        """Initialize the rules loader.

        Args:
            config_path: Path to the domain rules YAML file
        """
        self.config_path = Path(config_path)

    def load(self) -> DomainRulesConfig:
        """Load and parse the rules file.

        Returns:
            Parsed and validated rules

        Raises:
            FileNotFoundError: If the rules file doesn't exist
            pydantic.ValidationError: If a rule is invalid
            yaml.YAMLError: If YAML parsing fails
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Domain rules file not found: {self.config_path}")

        logger.info(f"Loading domain rules from {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML domain rules: {e}")
            raise

        config = DomainRulesConfig(**(raw_config or {}))
        logger.info(
            f"Loaded {len(config.rules)} domain rule overrides "
            f"(version {config.version})"
        )
        return config


def load_domain_rules(config_path: Optional[str | Path] = None) -> DomainRulesConfig:
    """Load domain rules from a file, or the defaults when no file exists.

    Args:
        config_path: Rules path; defaults to settings.domain_rules_path

    Returns:
        Loaded rules, or an empty DomainRulesConfig
    """
    if config_path is None:
        config_path = settings.domain_rules_path

    path = Path(config_path)
    if not path.exists():
        logger.warning(f"No domain rules at {path}, using default rules")
        return DomainRulesConfig()
    return DomainRulesLoader(path).load()
