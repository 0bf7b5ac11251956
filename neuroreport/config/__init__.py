"""Configuration: settings, model catalogue and domain rules."""

from .domain_rules import (
    DomainRule,
    DomainRulesConfig,
    DomainRulesLoader,
    load_domain_rules,
)
from .model_catalogue import (
    ModelCatalogue,
    ModelCatalogueLoader,
    SectionModels,
    default_model_catalogue,
    load_model_catalogue,
)
from .settings import Settings, settings

__all__ = [
    "DomainRule",
    "DomainRulesConfig",
    "DomainRulesLoader",
    "ModelCatalogue",
    "ModelCatalogueLoader",
    "SectionModels",
    "Settings",
    "default_model_catalogue",
    "load_domain_rules",
    "load_model_catalogue",
    "settings",
]
