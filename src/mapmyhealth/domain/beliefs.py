"""Condition probabilities from priors and observed evidence.

Beliefs are always recomputed from scratch: ``seed_priors`` followed by a
single ``apply_evidence`` pass over the whole case. Folding the same case into
already-updated beliefs multiplies by the same likelihood ratios twice.
"""
import logging
import math
from typing import Dict, Optional, Sequence, Tuple

from .models import (
    BandCategory,
    Beliefs,
    CaseState,
    Classification,
    ConditionDef,
    DemographicPrior,
    Demographics,
    Recommendation,
    StatusLabel,
    TestPerformanceDef,
)


logger = logging.getLogger(__name__)


# Keeps p/(1-p) finite when a single condition holds all the mass.
MAX_PROBABILITY = 1.0 - 1e-12
MIN_DENOMINATOR = 1e-9

CONFIRMED_LABEL: BandCategory = "highly-likely"

DEFAULT_RECOMMENDATIONS: Dict[str, Recommendation] = {
    "highly-likely": "targeted-care",
    "likely": "supportive-care",
    "possible": "watchful-waiting",
    "not-likely": "watchful-waiting",
    "very-unlikely": "watchful-waiting",
    "unknown": "watchful-waiting",
}


def normalize_beliefs(beliefs: Beliefs) -> Beliefs:
    total = sum(beliefs.values())
    if total <= 0:
        if not beliefs:
            return {}
        share = 1.0 / len(beliefs)
        return {condition_id: share for condition_id in beliefs}
    return {condition_id: p / total for condition_id, p in beliefs.items()}


def entropy(beliefs: Beliefs) -> float:
    """Shannon entropy of the distribution, in bits."""
    h = 0.0
    for p in beliefs.values():
        if p > 0:
            h -= p * math.log2(p)
    return h


def matches_demographics(demographics: Demographics, rule: DemographicPrior) -> bool:
    if rule.age_range is not None and demographics.age is not None:
        if rule.age_range.min is not None and demographics.age < rule.age_range.min:
            return False
        if rule.age_range.max is not None and demographics.age > rule.age_range.max:
            return False
    if rule.sex_at_birth is not None and demographics.sex_at_birth is not None:
        if demographics.sex_at_birth != rule.sex_at_birth:
            return False
    if rule.season is not None and demographics.season is not None:
        if demographics.season != rule.season:
            return False
    return True


def select_prior(condition: ConditionDef, demographics: Optional[Demographics]) -> float:
    """Demographic override for a condition's prior.

    Rules are tried in declaration order and the first match wins; later
    rules are never consulted, even if they would match more precisely.
    Demographics with no field set fall back to the default prior.
    """
    if demographics is not None and demographics.model_dump(exclude_none=True):
        for rule in condition.priors.by_demo:
            if matches_demographics(demographics, rule):
                return rule.prior
    return condition.priors.default


def seed_priors(case_state: CaseState, condition_defs: Sequence[ConditionDef]) -> Beliefs:
    priors = {c.id: select_prior(c, case_state.demographics) for c in condition_defs}
    return normalize_beliefs(priors)


def resolve_performance(perf: TestPerformanceDef, days_since_onset: float) -> Tuple[float, float]:
    """Sensitivity and specificity for the given illness day."""
    for band in perf.piecewise_by_days_since_onset:
        if band.days_range.contains(days_since_onset):
            return band.sensitivity, band.specificity
    return perf.sensitivity, perf.specificity


def _find_performance(
    target: str, condition_id: str, test_perf: Sequence[TestPerformanceDef]
) -> Optional[TestPerformanceDef]:
    for perf in test_perf:
        if not perf.covers(target) or not perf.piecewise_by_days_since_onset:
            continue
        if perf.target_condition is not None and perf.target_condition != condition_id:
            continue
        return perf
    return None


def time_adjusted_lr(perf: TestPerformanceDef, days_since_onset: float, present: bool) -> float:
    sensitivity, specificity = resolve_performance(perf, days_since_onset)
    if present:
        return sensitivity / max(1.0 - specificity, MIN_DENOMINATOR)
    return (1.0 - sensitivity) / max(specificity, MIN_DENOMINATOR)


def _to_odds(p: float) -> float:
    p = min(max(p, 0.0), MAX_PROBABILITY)
    return p / (1.0 - p)


def apply_evidence(
    beliefs: Beliefs,
    case_state: CaseState,
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
) -> Beliefs:
    """Update every condition's odds with the likelihood ratios of observed findings.

    Each condition is updated independently. Within a condition, at most one
    LR row is applied per target id: the first row in declaration order wins,
    so buckets referenced by several rows are not double-counted. Findings
    with unknown presence or absent from the case are skipped. When a finding
    carries ``days_since_onset`` and a piecewise performance record covers its
    target, the LR is recomputed from the banded sensitivity/specificity.
    """
    updated = dict(beliefs)

    for condition in condition_defs:
        if condition.id not in updated:
            continue
        odds = _to_odds(updated[condition.id])
        applied = set()

        for row in condition.lr_table:
            if row.target in applied:
                continue
            finding = case_state.finding(row.target)
            if finding is None or finding.presence == "unknown":
                continue
            applied.add(row.target)

            present = finding.presence == "present"
            lr = row.lr_pos if present else row.lr_neg
            if finding.days_since_onset is not None:
                perf = _find_performance(row.target, condition.id, test_perf)
                if perf is not None:
                    lr = time_adjusted_lr(perf, finding.days_since_onset, present)
            odds *= lr

        updated[condition.id] = odds / (1.0 + odds)

    return normalize_beliefs(updated)


def band_category(condition: ConditionDef, probability: float) -> StatusLabel:
    for band in condition.probability_bands:
        if band.contains(probability):
            return band.category
    return "unknown"


def recommendation_for(condition: Optional[ConditionDef], label: StatusLabel) -> Recommendation:
    if condition is not None and condition.recommendations_by_band and label != "unknown":
        mapped = condition.recommendations_by_band.get(label)
        if mapped is not None:
            return mapped
    return DEFAULT_RECOMMENDATIONS[label]


def classify(beliefs: Beliefs, condition_defs: Sequence[ConditionDef]) -> Classification:
    ranked = sorted(beliefs.items(), key=lambda item: item[1], reverse=True)
    if not ranked:
        return Classification(top=[], label="unknown", recommendation="watchful-waiting")

    top_id, top_probability = ranked[0]
    condition = next((c for c in condition_defs if c.id == top_id), None)
    if condition is None:
        logger.warning("Top-ranked condition %s is not in the content pack", top_id)
        return Classification(top=ranked[:5], label="unknown", recommendation="watchful-waiting")

    label = band_category(condition, top_probability)
    return Classification(top=ranked[:5], label=label, recommendation=recommendation_for(condition, label))


def is_confirmed(label: StatusLabel) -> bool:
    return label == CONFIRMED_LABEL
