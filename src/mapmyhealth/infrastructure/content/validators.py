"""Consistency checks for externally authored content packs."""
from typing import List, Tuple

from mapmyhealth.domain.models import ConditionDef, ContentPack, LikelihoodRatio, TestPerformanceDef


def validate_probability_bands(condition: ConditionDef) -> Tuple[bool, str]:
    """
    Check that a condition's bands partition [0, 1] without gaps or overlaps.

    Args:
        condition: Condition whose probability_bands are checked

    Returns:
        Tuple of (is_valid, error_message)
    """
    bands = sorted(condition.probability_bands, key=lambda b: b.min_inclusive)
    if not bands:
        return False, f"{condition.id}: no probability bands"

    if bands[0].min_inclusive > 0.0:
        return False, f"{condition.id}: bands start at {bands[0].min_inclusive}, not 0"

    for band in bands:
        if band.max_exclusive <= band.min_inclusive:
            return False, f"{condition.id}: empty band {band.category}"

    for lower, upper in zip(bands, bands[1:]):
        if upper.min_inclusive > lower.max_exclusive:
            return False, f"{condition.id}: gap between {lower.category} and {upper.category}"
        if upper.min_inclusive < lower.max_exclusive:
            return False, f"{condition.id}: {lower.category} overlaps {upper.category}"

    if bands[-1].max_exclusive < 1.0:
        return False, f"{condition.id}: bands end at {bands[-1].max_exclusive}, not 1"

    return True, ""


def validate_likelihood_ratio(condition_id: str, row: LikelihoodRatio) -> Tuple[bool, str]:
    if row.lr_pos <= 0 or row.lr_neg <= 0:
        return False, f"{condition_id}: likelihood ratios for {row.target} must be positive"
    return True, ""


def validate_test_performance(perf: TestPerformanceDef) -> Tuple[bool, str]:
    if perf.specificity >= 1.0 or perf.specificity <= 0.0:
        return False, f"{perf.id}: specificity must be strictly between 0 and 1"
    for band in perf.piecewise_by_days_since_onset:
        if band.specificity >= 1.0 or band.specificity <= 0.0:
            return False, f"{perf.id}: banded specificity must be strictly between 0 and 1"
    return True, ""


def validate_content_pack(pack: ContentPack) -> List[str]:
    """
    Collect problems in a content pack without rejecting it.

    Returns:
        List of human-readable problems, empty when the pack is consistent
    """
    problems: List[str] = []
    finding_ids = {f.id for f in pack.findings}
    action_ids = {a.id for a in pack.actions}
    perf_ids = {p.id for p in pack.test_performance}

    for condition in pack.conditions:
        ok, error = validate_probability_bands(condition)
        if not ok:
            problems.append(error)
        for row in condition.lr_table:
            ok, error = validate_likelihood_ratio(condition.id, row)
            if not ok:
                problems.append(error)
            if row.target not in finding_ids:
                problems.append(f"{condition.id}: LR target {row.target} is not a known finding")

    for action in pack.actions:
        for fid in action.preconditions.require_findings + action.preconditions.forbid_findings:
            if fid not in finding_ids:
                problems.append(f"{action.id}: precondition references unknown finding {fid}")
        for aid in action.preconditions.require_actions:
            if aid not in action_ids:
                problems.append(f"{action.id}: precondition references unknown action {aid}")
        if action.test_binding is not None and action.test_binding.performance_ref_id not in perf_ids:
            problems.append(f"{action.id}: unknown test performance {action.test_binding.performance_ref_id}")
        for outcome in action.outcomes:
            for effect in outcome.effects:
                if effect.finding_id not in finding_ids:
                    problems.append(f"{action.id}/{outcome.id}: effect on unknown finding {effect.finding_id}")

    for perf in pack.test_performance:
        ok, error = validate_test_performance(perf)
        if not ok:
            problems.append(error)

    return problems
