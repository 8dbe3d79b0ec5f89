"""Unit tests for priors, evidence updates and classification."""
import math

import pytest

from mapmyhealth.domain.beliefs import (
    apply_evidence,
    band_category,
    classify,
    entropy,
    is_confirmed,
    normalize_beliefs,
    resolve_performance,
    seed_priors,
    select_prior,
    time_adjusted_lr,
)
from mapmyhealth.domain.models import Demographics


def _posterior(state, pack):
    priors = seed_priors(state, pack.conditions)
    return apply_evidence(priors, state, pack.conditions, pack.test_performance)


class TestNormalizeAndEntropy:
    """Test distribution helpers."""

    def test_normalize_sums_to_one(self):
        """Test that normalized beliefs sum to one."""
        result = normalize_beliefs({"a": 2.0, "b": 6.0})
        assert result == pytest.approx({"a": 0.25, "b": 0.75})

    def test_normalize_zero_mass_is_uniform(self):
        """Test the uniform split for zero total mass."""
        assert normalize_beliefs({"a": 0.0, "b": 0.0}) == {"a": 0.5, "b": 0.5}

    def test_normalize_empty(self):
        """Test normalizing no beliefs."""
        assert normalize_beliefs({}) == {}

    def test_entropy(self):
        """Test entropy in bits."""
        assert entropy({"a": 0.25, "b": 0.25, "c": 0.25, "d": 0.25}) == pytest.approx(2.0)
        assert entropy({"a": 1.0, "b": 0.0}) == 0.0
        assert entropy({}) == 0.0


class TestPriors:
    """Test prior seeding and demographic overrides."""

    def test_default_priors(self, content_pack, case):
        """Test default priors without demographics."""
        priors = seed_priors(case(), content_pack.conditions)
        assert list(priors) == [c.id for c in content_pack.conditions]
        assert sum(priors.values()) == pytest.approx(1.0)
        assert priors["viral_pharyngitis"] == pytest.approx(0.6)
        assert priors["streptococcal_pharyngitis"] == pytest.approx(0.2)

    def test_first_matching_rule_wins(self, content_pack):
        """Test that the first matching demographic rule is used."""
        strep = content_pack.condition("streptococcal_pharyngitis")
        # Age 10 matches both the 5-15 and 3-18 rules; the first is used.
        assert select_prior(strep, Demographics(age=10)) == 0.35
        assert select_prior(strep, Demographics(age=17)) == 0.3
        assert select_prior(strep, Demographics(age=40)) == 0.2
        assert select_prior(strep, None) == 0.2

    def test_empty_demographics_use_default_prior(self, content_pack):
        """Test that demographics with no field set do not match any rule."""
        strep = content_pack.condition("streptococcal_pharyngitis")
        assert select_prior(strep, Demographics()) == 0.2

    def test_demographic_prior_shifts_distribution(self, content_pack, case):
        """Test that a pediatric prior raises strep."""
        adult = seed_priors(case(demographics=Demographics(age=40)), content_pack.conditions)
        child = seed_priors(case(demographics=Demographics(age=10)), content_pack.conditions)
        assert child["streptococcal_pharyngitis"] > adult["streptococcal_pharyngitis"]
        assert sum(child.values()) == pytest.approx(1.0)


class TestApplyEvidence:
    """Test the likelihood-ratio update."""

    def test_centor_findings_favour_strep(self, content_pack, centor_case):
        """Test the Centor presentation update."""
        beliefs = _posterior(centor_case, content_pack)
        assert sum(beliefs.values()) == pytest.approx(1.0)
        assert beliefs["streptococcal_pharyngitis"] == pytest.approx(0.4755, abs=1e-3)
        assert beliefs["viral_pharyngitis"] == pytest.approx(0.1840, abs=1e-3)
        assert beliefs["streptococcal_pharyngitis"] >= beliefs["viral_pharyngitis"] - 0.1

    def test_positive_rapid_test_makes_strep_leading(self, content_pack, case):
        """Test a positive rapid strep test on day two."""
        state = case(
            ("sore_throat", "present"),
            ("fever", "present"),
            ("cough", "absent"),
            ("rapid_strep_positive", "present", 2),
        )
        beliefs = _posterior(state, content_pack)
        assert beliefs["streptococcal_pharyngitis"] == pytest.approx(0.7114, abs=1e-3)
        assert max(beliefs, key=beliefs.get) == "streptococcal_pharyngitis"

    def test_days_since_onset_changes_test_lr(self, content_pack, case):
        """Test that illness day changes the test LR."""
        early = _posterior(case(("rapid_strep_positive", "present", 0)), content_pack)
        peak = _posterior(case(("rapid_strep_positive", "present", 3)), content_pack)
        assert peak["streptococcal_pharyngitis"] > early["streptococcal_pharyngitis"]

    def test_piecewise_applies_only_to_target_condition(self, content_pack, case):
        """Test that banded performance only updates its target condition."""
        timed = _posterior(case(("rapid_strep_positive", "present", 3)), content_pack)
        untimed = _posterior(case(("rapid_strep_positive", "present")), content_pack)
        # Viral keeps its static LR; only strep is re-derived from the banded performance.
        assert timed["streptococcal_pharyngitis"] > untimed["streptococcal_pharyngitis"]
        assert timed["viral_pharyngitis"] < untimed["viral_pharyngitis"]

    def test_first_row_per_target_wins(self, make_pack, case):
        """Test that one LR row per target is applied."""
        pack = make_pack(
            conditions=[
                {
                    "id": "a",
                    "label": "A",
                    "priors": {"default": 0.5},
                    "lr_table": [
                        {"target": "f1", "lr_pos": 4.0, "lr_neg": 0.25},
                        {"target": "f1", "lr_pos": 100.0, "lr_neg": 0.01},
                    ],
                },
                {"id": "b", "label": "B", "priors": {"default": 0.5}},
            ]
        )
        beliefs = _posterior(case(("f1", "present")), pack)
        # Odds 1 -> 4 for A, B unchanged at 0.5: (0.8, 0.5) normalized.
        assert beliefs["a"] == pytest.approx(0.8 / 1.3)
        assert beliefs["b"] == pytest.approx(0.5 / 1.3)

    def test_absent_finding_uses_negative_lr(self, make_pack, case):
        """Test LR- for an absent finding."""
        pack = make_pack()
        beliefs = _posterior(case(("f1", "absent")), pack)
        assert beliefs["a"] == pytest.approx(0.2 / 0.7)

    def test_unknown_and_missing_findings_are_skipped(self, make_pack, case):
        """Test that unknown and missing findings leave beliefs alone."""
        pack = make_pack()
        beliefs = _posterior(case(("f1", "unknown"), ("other", "present")), pack)
        assert beliefs == pytest.approx({"a": 0.5, "b": 0.5})

    def test_recompute_is_idempotent(self, content_pack, centor_case):
        """Test that recomputing from priors gives the same beliefs."""
        assert _posterior(centor_case, content_pack) == _posterior(centor_case, content_pack)

    def test_conditions_missing_from_beliefs_are_ignored(self, content_pack, centor_case):
        """Test that conditions outside the belief vector are skipped."""
        beliefs = {"streptococcal_pharyngitis": 0.5, "viral_pharyngitis": 0.5}
        updated = apply_evidence(beliefs, centor_case, content_pack.conditions, content_pack.test_performance)
        assert set(updated) == {"streptococcal_pharyngitis", "viral_pharyngitis"}


class TestTestPerformance:
    """Test piecewise sensitivity/specificity."""

    def test_resolve_by_day(self, content_pack):
        """Test sensitivity and specificity per illness day."""
        perf = content_pack.test_performance[0]
        assert resolve_performance(perf, 0) == (0.75, 0.95)
        assert resolve_performance(perf, 2) == (0.88, 0.95)
        assert resolve_performance(perf, 30) == (0.8, 0.95)

    def test_falls_back_to_overall_values(self, content_pack):
        """Test overall values outside every band."""
        perf = content_pack.test_performance[0].model_copy(update={"piecewise_by_days_since_onset": []})
        assert resolve_performance(perf, 2) == (0.86, 0.95)

    def test_time_adjusted_lr(self, content_pack):
        """Test the LR built from banded performance."""
        perf = content_pack.test_performance[0]
        assert time_adjusted_lr(perf, 2, present=True) == pytest.approx(0.88 / 0.05)
        assert time_adjusted_lr(perf, 2, present=False) == pytest.approx(0.12 / 0.95)
        assert math.isfinite(time_adjusted_lr(perf.model_copy(update={"specificity": 1.0, "piecewise_by_days_since_onset": []}), 2, present=True))


class TestClassify:
    """Test band classification and recommendations."""

    def test_band_edges(self, content_pack):
        """Test band membership at the edges."""
        strep = content_pack.condition("streptococcal_pharyngitis")
        assert band_category(strep, 0.0) == "very-unlikely"
        assert band_category(strep, 0.05) == "not-likely"
        assert band_category(strep, 0.79) == "likely"
        assert band_category(strep, 0.8) == "highly-likely"
        assert band_category(strep, 1.0) == "highly-likely"

    def test_classify_top_condition(self, content_pack, centor_case):
        """Test classification of the leading condition."""
        result = classify(_posterior(centor_case, content_pack), content_pack.conditions)
        assert result.top[0][0] == "streptococcal_pharyngitis"
        assert result.label == "possible"
        assert result.recommendation == "watchful-waiting"
        assert [p for _, p in result.top] == sorted((p for _, p in result.top), reverse=True)

    def test_recommendation_override_by_band(self, content_pack):
        """Test per-band recommendation overrides."""
        beliefs = {"peritonsillar_abscess": 0.6, "viral_pharyngitis": 0.4}
        result = classify(beliefs, content_pack.conditions)
        assert result.label == "likely"
        assert result.recommendation == "urgent-care"

    def test_default_recommendations(self, content_pack):
        """Test default recommendations per band."""
        assert classify({"streptococcal_pharyngitis": 0.9, "viral_pharyngitis": 0.1}, content_pack.conditions).recommendation == "targeted-care"
        assert classify({"streptococcal_pharyngitis": 0.6, "viral_pharyngitis": 0.4}, content_pack.conditions).recommendation == "supportive-care"

    def test_empty_beliefs(self, content_pack):
        """Test classifying no beliefs."""
        result = classify({}, content_pack.conditions)
        assert result.top == []
        assert result.label == "unknown"

    def test_unknown_top_condition(self, content_pack):
        """Test a leading condition missing from the pack."""
        result = classify({"mystery": 0.9, "viral_pharyngitis": 0.1}, content_pack.conditions)
        assert result.label == "unknown"
        assert result.recommendation == "watchful-waiting"

    def test_is_confirmed(self):
        """Test the confirmation label."""
        assert is_confirmed("highly-likely")
        assert not is_confirmed("likely")


class TestInvariants:
    """Test properties that hold for every case."""

    @pytest.mark.parametrize(
        "findings",
        [
            [],
            [("fever", "present")],
            [("cough", "absent"), ("rhinorrhea", "present"), ("fatigue", "unknown")],
            [("trismus", "present"), ("muffled_voice", "present"), ("rapid_strep_negative", "present", 4)],
            [("splenomegaly", "present"), ("monospot_positive", "present", 1), ("not_in_pack", "present")],
        ],
    )
    def test_beliefs_are_a_distribution(self, content_pack, case, findings):
        """Test that beliefs stay a probability distribution."""
        state = case(*findings)
        priors = seed_priors(state, content_pack.conditions)
        beliefs = apply_evidence(priors, state, content_pack.conditions, content_pack.test_performance)
        for vector in (priors, beliefs):
            assert all(p >= 0 for p in vector.values())
            assert sum(vector.values()) == pytest.approx(1.0, abs=1e-6)

    def test_lr_monotonicity(self, content_pack, case):
        """Test that a present supporting finding never lowers its condition."""
        baseline = _posterior(case(("sore_throat", "present")), content_pack)
        present = _posterior(case(("sore_throat", "present"), ("tonsillar_exudates", "present")), content_pack)
        absent = _posterior(case(("sore_throat", "present"), ("tonsillar_exudates", "absent")), content_pack)
        assert present["streptococcal_pharyngitis"] > baseline["streptococcal_pharyngitis"]
        assert absent["streptococcal_pharyngitis"] < baseline["streptococcal_pharyngitis"]

    def test_classify_is_pure(self, content_pack, centor_case):
        """Test that classify does not mutate its input."""
        beliefs = _posterior(centor_case, content_pack)
        snapshot = dict(beliefs)
        first = classify(beliefs, content_pack.conditions)
        second = classify(beliefs, content_pack.conditions)
        assert first == second
        assert beliefs == snapshot
