"""Catalogue of clinical report domains.

Each DomainKind has one declarative DomainConfig naming the domain labels it
consumes, the data partition it is validated against, the raters it expects
and the renderer file it writes to. Child and adult variants of the rating
scale domains are separate kinds.
"""

import enum
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

from neuroreport.models import DataSource, Rater, ScoreRecord


class PatientType(str, enum.Enum):
    """Age band of the patient a report is written for."""

    CHILD = "child"
    ADULT = "adult"


class DomainKind(str, enum.Enum):
    """Clinical domains a report can contain."""

    IQ = "iq"
    ACADEMICS = "academics"
    VERBAL = "verbal"
    SPATIAL = "spatial"
    MEMORY = "memory"
    EXECUTIVE = "executive"
    MOTOR = "motor"
    SOCIAL = "social"
    ADHD_CHILD = "adhd_child"
    ADHD_ADULT = "adhd_adult"
    EMOTION_CHILD = "emotion_child"
    EMOTION_ADULT = "emotion_adult"
    ADAPTIVE = "adaptive"
    DAILY_LIVING = "daily_living"


BOTH_AGES: FrozenSet[PatientType] = frozenset({PatientType.CHILD, PatientType.ADULT})
CHILD_RATERS: Tuple[Rater, ...] = (Rater.SELF, Rater.PARENT, Rater.TEACHER)
ADULT_RATERS: Tuple[Rater, ...] = (Rater.SELF, Rater.OBSERVER)


@dataclass(frozen=True)
class DomainConfig:
    """Static description of one report domain.

    Attributes:
        kind: Domain kind
        title: Heading used in the report
        labels: Domain column values routed to this kind
        data_source: Partition the domain is validated against
        section_number: Renderer section number, e.g. "02-01"
        file_key: Stem used in renderer file names
        patient_types: Patient types the domain applies to
        raters: Expected raters, empty for performance-based domains
    """

    kind: DomainKind
    title: str
    labels: Tuple[str, ...]
    data_source: DataSource
    section_number: str
    file_key: str
    patient_types: FrozenSet[PatientType] = BOTH_AGES
    raters: Tuple[Rater, ...] = ()

    def text_file(self) -> str:
        """Renderer file receiving the narrative, e.g. ``_02-01_iq_text.qmd``."""
        return f"_{self.section_number}_{self.file_key}_text.qmd"

    def matches(self, record: ScoreRecord) -> bool:
        """Check whether a record's domain label routes to this kind."""
        return record.domain is not None and record.domain in self.labels

    def accepts_rater(self, record: ScoreRecord) -> bool:
        """Check whether a record comes from one of the expected raters.

        Domains without expected raters, and records without a rater, accept
        any record.
        """
        return not self.raters or record.rater is None or record.rater in self.raters

    def applies_to(self, patient_type: PatientType) -> bool:
        return patient_type in self.patient_types


DOMAIN_CATALOGUE: Dict[DomainKind, DomainConfig] = {
    config.kind: config
    for config in (
        DomainConfig(
            kind=DomainKind.IQ,
            title="General Cognitive Ability",
            labels=("General Cognitive Ability",),
            data_source=DataSource.NEUROCOG,
            section_number="02-01",
            file_key="iq",
        ),
        DomainConfig(
            kind=DomainKind.ACADEMICS,
            title="Academic Skills",
            labels=("Academic Skills",),
            data_source=DataSource.NEUROCOG,
            section_number="02-02",
            file_key="academics",
        ),
        DomainConfig(
            kind=DomainKind.VERBAL,
            title="Verbal/Language",
            labels=("Verbal/Language",),
            data_source=DataSource.NEUROCOG,
            section_number="02-03",
            file_key="verbal",
        ),
        DomainConfig(
            kind=DomainKind.SPATIAL,
            title="Visual Perception/Construction",
            labels=("Visual Perception/Construction",),
            data_source=DataSource.NEUROCOG,
            section_number="02-04",
            file_key="spatial",
        ),
        DomainConfig(
            kind=DomainKind.MEMORY,
            title="Memory",
            labels=("Memory",),
            data_source=DataSource.NEUROCOG,
            section_number="02-05",
            file_key="memory",
        ),
        DomainConfig(
            kind=DomainKind.EXECUTIVE,
            title="Attention/Executive",
            labels=("Attention/Executive",),
            data_source=DataSource.NEUROCOG,
            section_number="02-06",
            file_key="executive",
        ),
        DomainConfig(
            kind=DomainKind.MOTOR,
            title="Motor",
            labels=("Motor",),
            data_source=DataSource.NEUROCOG,
            section_number="02-07",
            file_key="motor",
        ),
        DomainConfig(
            kind=DomainKind.SOCIAL,
            title="Social Cognition",
            labels=("Social Cognition",),
            data_source=DataSource.NEUROCOG,
            section_number="02-08",
            file_key="social",
        ),
        DomainConfig(
            kind=DomainKind.ADHD_CHILD,
            title="ADHD",
            labels=("ADHD",),
            data_source=DataSource.NEUROBEHAV,
            section_number="02-09",
            file_key="adhd_child",
            patient_types=frozenset({PatientType.CHILD}),
            raters=CHILD_RATERS,
        ),
        DomainConfig(
            kind=DomainKind.ADHD_ADULT,
            title="ADHD",
            labels=("ADHD",),
            data_source=DataSource.NEUROBEHAV,
            section_number="02-09",
            file_key="adhd_adult",
            patient_types=frozenset({PatientType.ADULT}),
            raters=ADULT_RATERS,
        ),
        DomainConfig(
            kind=DomainKind.EMOTION_CHILD,
            title="Behavioral/Emotional/Social",
            labels=(
                "Behavioral/Emotional/Social",
                "Psychiatric Disorders",
                "Personality Disorders",
                "Substance Use",
                "Psychosocial Problems",
            ),
            data_source=DataSource.NEUROBEHAV,
            section_number="02-10",
            file_key="emotion_child",
            patient_types=frozenset({PatientType.CHILD}),
            raters=CHILD_RATERS,
        ),
        DomainConfig(
            kind=DomainKind.EMOTION_ADULT,
            title="Emotional/Behavioral/Personality",
            labels=("Emotional/Behavioral/Personality",),
            data_source=DataSource.NEUROBEHAV,
            section_number="02-10",
            file_key="emotion_adult",
            patient_types=frozenset({PatientType.ADULT}),
            raters=ADULT_RATERS,
        ),
        DomainConfig(
            kind=DomainKind.ADAPTIVE,
            title="Adaptive Functioning",
            labels=("Adaptive Functioning",),
            data_source=DataSource.NEUROBEHAV,
            section_number="02-11",
            file_key="adaptive",
        ),
        DomainConfig(
            kind=DomainKind.DAILY_LIVING,
            title="Daily Living",
            labels=("Daily Living",),
            data_source=DataSource.NEUROCOG,
            section_number="02-12",
            file_key="daily_living",
        ),
    )
}


def get_domain_config(kind: DomainKind) -> DomainConfig:
    """Look up the catalogue entry for a domain kind."""
    return DOMAIN_CATALOGUE[kind]


def domains_for_patient(patient_type: PatientType) -> List[DomainConfig]:
    """Catalogue entries that apply to a patient type, in report order."""
    return [c for c in DOMAIN_CATALOGUE.values() if c.applies_to(patient_type)]

