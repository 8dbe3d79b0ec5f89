"""Unit tests for the case session."""
import logging

import pytest

from mapmyhealth.application.session import CaseSession
from mapmyhealth.domain.models import Demographics


@pytest.fixture
def session(content_pack):
    s = CaseSession(content_pack)
    s.add_finding("sore_throat")
    return s


class TestFindings:
    """Test finding management."""

    def test_add_replaces_same_id(self, session):
        """Test that adding a finding replaces the same id."""
        session.add_finding("fever", "absent")
        session.add_finding("fever", "present", value=38.5, days_since_onset=1)
        fevers = [f for f in session.case_state.findings if f.finding_id == "fever"]
        assert len(fevers) == 1
        assert fevers[0].presence == "present"
        assert fevers[0].value == 38.5

    def test_remove(self, session):
        """Test removing a finding."""
        assert session.remove_finding("sore_throat")
        assert not session.remove_finding("sore_throat")
        assert session.case_state.findings == []

    def test_unknown_finding_warns(self, session, caplog):
        """Test a warning for a finding missing from the pack."""
        with caplog.at_level(logging.WARNING):
            session.add_finding("mystery")
        assert "mystery" in caplog.text
        assert session.case_state.finding("mystery") is not None

    def test_demographics_and_reset(self, session):
        """Test setting demographics and starting a new case."""
        session.set_demographics(Demographics(age=12))
        assert session.case_state.demographics.age == 12
        assert session.case_state.finding("sore_throat") is not None

        session.reset(Demographics(age=30))
        assert session.case_state.findings == []
        assert session.case_state.demographics.age == 30
        assert session.history == []


class TestApplyActionOutcome:
    """Test applying chosen outcomes."""

    def test_applied(self, session):
        """Test applying an outcome."""
        result = session.apply_action_outcome("rapid_strep_test", "rapid_strep_positive")
        assert result.status == "applied"
        assert result.escalation is None
        assert session.case_state.has_present("rapid_strep_positive")
        assert session.case_state.has_completed("rapid_strep_test")

        view = session.view()
        assert view.top_panel.ranked_conditions[0].id == "streptococcal_pharyngitis"
        assert "rapid_strep_test" not in [a.action_id for a in view.bottom_panel.action_ranking]

    def test_not_found(self, session):
        """Test applying an unknown action or outcome."""
        assert session.apply_action_outcome("nope", "x").status == "not-found"
        assert session.apply_action_outcome("rapid_strep_test", "maybe").status == "not-found"
        assert session.case_state.completed_actions == []
        assert [r.status for r in session.history] == ["not-found", "not-found"]

    def test_strict_mode_checks_preconditions(self, content_pack):
        """Test that strict sessions check preconditions."""
        strict = CaseSession(content_pack, strict=True)
        strict.add_finding("sore_throat")
        assert strict.apply_action_outcome("throat_culture", "throat_culture_positive").status == "unavailable"

        lenient = CaseSession(content_pack)
        lenient.add_finding("sore_throat")
        assert lenient.apply_action_outcome("throat_culture", "throat_culture_positive").status == "applied"

    def test_worsening_after_observation_escalates(self, session):
        """Test escalation after worsening symptoms."""
        result = session.apply_action_outcome("wait_observe_48h", "worse")
        assert result.status == "applied"
        escalation = result.escalation
        assert escalation is not None
        assert escalation.new_triage.urgent
        assert escalation.requires_reevaluation
        assert escalation.additional_actions == ["urgent_medical_evaluation", "reassess_symptoms"]

        # Symptom worsening is itself a red flag.
        assert session.view().triage.urgent

    def test_improvement_does_not_escalate(self, session):
        """Test that improvement does not escalate."""
        result = session.apply_action_outcome("wait_observe_48h", "improved")
        assert result.escalation is None
        view = session.view()
        assert not view.triage.urgent
        assert view.top_panel.ranked_conditions[0].id == "viral_pharyngitis"
