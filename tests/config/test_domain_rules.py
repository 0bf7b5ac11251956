"""Tests for domain rule configuration."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from neuroreport.config.domain_rules import (
    DomainRule,
    DomainRulesConfig,
    DomainRulesLoader,
    load_domain_rules,
    resolve_rule,
)
from neuroreport.domains import DomainKind


class TestDomainRule:
    """Tests for DomainRule."""

    def test_defaults(self):
        rule = DomainRule()

        assert rule.min_scoreable_rows == 1
        assert rule.required_columns == frozenset()
        assert rule.required_test_allowlist is None

    def test_allowlist_is_lowercased(self):
        rule = DomainRule(required_test_allowlist=["ABAS3", " Vineland3 "])

        assert rule.required_test_allowlist == frozenset({"abas3", "vineland3"})

    def test_empty_allowlist_rejected(self):
        with pytest.raises(ValidationError, match="must not be empty"):
            DomainRule(required_test_allowlist=[])

    def test_unknown_column_rejected(self):
        with pytest.raises(ValidationError, match="Unknown ScoreRecord fields"):
            DomainRule(required_columns={"t_score"})

    def test_min_rows_must_be_positive(self):
        with pytest.raises(ValidationError):
            DomainRule(min_scoreable_rows=0)


class TestResolveRule:
    """Tests for rule lookup."""

    def test_none_gives_default(self):
        assert resolve_rule(None, DomainKind.MEMORY) == DomainRule()

    def test_mapping(self):
        rule = DomainRule(min_scoreable_rows=3)

        assert resolve_rule({DomainKind.MEMORY: rule}, DomainKind.MEMORY) is rule
        assert resolve_rule({DomainKind.MEMORY: rule}, DomainKind.MOTOR) == DomainRule()

    def test_config(self):
        config = DomainRulesConfig(rules={"motor": {"min_scoreable_rows": 2}})

        assert resolve_rule(config, DomainKind.MOTOR).min_scoreable_rows == 2


class TestDomainRulesLoader:
    """Tests for DomainRulesLoader."""

    def test_load(self, tmp_path):
        path = tmp_path / "domains.yaml"
        path.write_text(
            yaml.dump(
                {
                    "version": "1.1",
                    "rules": {"memory": {"required_columns": ["percentile"]}},
                }
            )
        )

        config = DomainRulesLoader(path).load()

        assert config.version == "1.1"
        assert config.rule_for(DomainKind.MEMORY).required_columns == frozenset(
            {"percentile"}
        )

    def test_unknown_domain_kind_rejected(self, tmp_path):
        path = tmp_path / "domains.yaml"
        path.write_text(yaml.dump({"rules": {"astrology": {}}}))

        with pytest.raises(ValidationError):
            DomainRulesLoader(path).load()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            DomainRulesLoader(tmp_path / "missing.yaml").load()

    def test_load_domain_rules_falls_back(self, tmp_path):
        config = load_domain_rules(tmp_path / "missing.yaml")

        assert config.rules == {}

    def test_shipped_rules(self):
        """Test that the shipped rules set the adaptive allow-list."""
        path = Path(__file__).parent.parent.parent / "config" / "domains.yaml"

        config = DomainRulesLoader(path).load()

        assert config.rule_for(DomainKind.ADAPTIVE).required_test_allowlist == frozenset(
            {"abas3", "vineland3", "srs2", "brief2"}
        )
        assert config.rule_for(DomainKind.MEMORY) == DomainRule()
