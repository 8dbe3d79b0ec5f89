"""Shared fixtures: the bundled sore-throat pack and small hand-built packs."""
import pytest

from mapmyhealth.domain.models import CaseState, ContentPack, FindingValue
from mapmyhealth.infrastructure.content.json_pack import BUNDLED_PACK, JsonContentPackAdapter


STANDARD_BANDS = [
    {"category": "very-unlikely", "min_inclusive": 0.0, "max_exclusive": 0.05},
    {"category": "not-likely", "min_inclusive": 0.05, "max_exclusive": 0.2},
    {"category": "possible", "min_inclusive": 0.2, "max_exclusive": 0.5},
    {"category": "likely", "min_inclusive": 0.5, "max_exclusive": 0.8},
    {"category": "highly-likely", "min_inclusive": 0.8, "max_exclusive": 1.01},
]


@pytest.fixture(scope="session")
def content_pack() -> ContentPack:
    return JsonContentPackAdapter(path=str(BUNDLED_PACK)).load_content_pack()


@pytest.fixture
def make_pack():
    """Factory for minimal packs built from plain dicts."""

    def _make(conditions=None, findings=None, actions=None, test_performance=None):
        return ContentPack(
            meta={"name": "tiny", "version": "0.0.1"},
            findings=findings or [{"id": "f1", "label": "Finding one"}],
            conditions=conditions
            or [
                {
                    "id": "a",
                    "label": "Condition A",
                    "priors": {"default": 0.5},
                    "probability_bands": STANDARD_BANDS,
                    "lr_table": [{"target": "f1", "lr_pos": 4.0, "lr_neg": 0.25}],
                },
                {
                    "id": "b",
                    "label": "Condition B",
                    "priors": {"default": 0.5},
                    "probability_bands": STANDARD_BANDS,
                },
            ],
            actions=actions or [],
            test_performance=test_performance or [],
        )

    return _make


def make_case(*findings, demographics=None, completed=None) -> CaseState:
    """Build a case from (finding_id, presence) or (finding_id, presence, days) tuples."""
    values = []
    for item in findings:
        finding_id, presence = item[0], item[1]
        days = item[2] if len(item) > 2 else None
        values.append(FindingValue(finding_id=finding_id, presence=presence, days_since_onset=days))
    return CaseState(demographics=demographics, findings=values, completed_actions=completed or [])


@pytest.fixture
def case():
    return make_case


@pytest.fixture
def centor_case():
    """Sore throat with fever, exudates, tender nodes and no cough."""
    return make_case(
        ("sore_throat", "present"),
        ("fever", "present"),
        ("cough", "absent"),
        ("tonsillar_exudates", "present"),
        ("tender_cervical_nodes", "present"),
    )
