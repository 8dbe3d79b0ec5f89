"""Value of information for unknown findings and candidate actions.

Information is measured as expected reduction of the Shannon entropy of the
belief vector. Action utility is a linear scalarisation:

    utility = info_gain_weight * EIG - (w_money * money + w_time * hours
                                        + w_difficulty * difficulty + w_risk * risk)
"""
import logging
from typing import List, Optional, Sequence

from .beliefs import apply_evidence, entropy, seed_priors
from .models import (
    ActionCosts,
    ActionDef,
    ActionOutcome,
    ActionVOI,
    Beliefs,
    CaseState,
    ConditionDef,
    CostWeights,
    FindingDef,
    FindingEffect,
    FindingValue,
    TestPerformanceDef,
    UnknownInfo,
)


logger = logging.getLogger(__name__)


def _simulate(
    beliefs: Beliefs,
    findings: List[FindingValue],
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
) -> Beliefs:
    return apply_evidence(beliefs, CaseState(findings=findings), condition_defs, test_perf)


def _known_ids(case_state: Optional[CaseState]) -> set:
    if case_state is None:
        return set()
    return {f.finding_id for f in case_state.findings if f.presence != "unknown"}


def finding_rationale(finding: FindingDef, condition_defs: Sequence[ConditionDef]) -> str:
    best_label = None
    best_spread = 0.0
    for condition in condition_defs:
        for row in condition.lr_table:
            if row.target != finding.id:
                continue
            spread = max(row.lr_pos, 1.0 / row.lr_neg if row.lr_neg > 0 else float("inf"))
            if best_label is None or spread > best_spread:
                best_label, best_spread = condition.label, spread
            break

    if best_label is None:
        return f"Finding {finding.label} has no known associations with current conditions"
    return f"Finding {finding.label} strongly influences {best_label} diagnosis"


def finding_information(
    finding_id: str,
    beliefs: Beliefs,
    condition_defs: Sequence[ConditionDef],
) -> float:
    """Entropy reduction from observing a finding, outcomes weighted equally."""
    current = entropy(beliefs)
    h_present = entropy(_simulate(beliefs, [FindingValue(finding_id=finding_id, presence="present")], condition_defs, []))
    h_absent = entropy(_simulate(beliefs, [FindingValue(finding_id=finding_id, presence="absent")], condition_defs, []))
    return max(0.0, current - (h_present + h_absent) / 2.0)


def most_informative_unknowns(
    beliefs: Beliefs,
    condition_defs: Sequence[ConditionDef],
    finding_defs: Sequence[FindingDef],
    k: int = 5,
    case_state: Optional[CaseState] = None,
) -> List[UnknownInfo]:
    known = _known_ids(case_state)
    scored = [
        UnknownInfo(
            finding_id=finding.id,
            metric=finding_information(finding.id, beliefs, condition_defs),
            rationale=finding_rationale(finding, condition_defs),
        )
        for finding in finding_defs
        if finding.id not in known
    ]
    scored.sort(key=lambda info: info.metric, reverse=True)
    return scored[:k]


def estimate_positive_probability(
    beliefs: Beliefs,
    action: ActionDef,
    condition_defs: Sequence[ConditionDef],
    perf: TestPerformanceDef,
) -> float:
    """P(test positive) = D*sens + (1 - D)*(1 - spec).

    D is the probability of disease: the mass of the performance record's
    target condition, or of every condition whose LR+ for the positive
    finding exceeds one.
    """
    positive_id = action.test_binding.finding_id_positive
    if perf.target_condition is not None:
        diseased = beliefs.get(perf.target_condition, 0.0)
    else:
        diseased = 0.0
        for condition in condition_defs:
            row = next((r for r in condition.lr_table if r.target == positive_id), None)
            if row is not None and row.lr_pos > 1.0:
                diseased += beliefs.get(condition.id, 0.0)

    probability = diseased * perf.sensitivity + (1.0 - diseased) * (1.0 - perf.specificity)
    return min(1.0, max(0.0, probability))


def outcome_probability(
    outcome: ActionOutcome,
    action: ActionDef,
    beliefs: Beliefs,
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
) -> float:
    if action.kind == "Test" and action.test_binding is not None:
        binding = action.test_binding
        perf = next((p for p in test_perf if p.id == binding.performance_ref_id), None)
        if perf is None:
            logger.warning("Action %s references missing test performance %s", action.id, binding.performance_ref_id)
        else:
            positive = estimate_positive_probability(beliefs, action, condition_defs, perf)
            if outcome.id == binding.finding_id_positive:
                return positive
            if outcome.id == binding.finding_id_negative:
                return 1.0 - positive

    if outcome.probability_hint is not None:
        return outcome.probability_hint
    return 1.0 / len(action.outcomes)


def merge_effects(findings: Sequence[FindingValue], effects: Sequence[FindingEffect]) -> List[FindingValue]:
    """Findings after an outcome: effects replace earlier values for the same id."""
    effect_ids = {e.finding_id for e in effects}
    merged = [f for f in findings if f.finding_id not in effect_ids]
    merged.extend(
        FindingValue(
            finding_id=e.finding_id,
            presence=e.presence,
            value=e.value,
            days_since_onset=e.days_since_onset,
        )
        for e in effects
    )
    return merged


def outcome_posterior(
    outcome: ActionOutcome,
    beliefs: Beliefs,
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
    case_state: Optional[CaseState] = None,
) -> Beliefs:
    """Beliefs after an outcome.

    With ``case_state`` the posterior is recomputed from priors over the case
    with the outcome's effects merged in, so evidence already in the case is
    counted once. Without it, ``beliefs`` must not contain any case evidence
    yet and the effects are applied on top of them.
    """
    if case_state is None:
        return _simulate(beliefs, merge_effects([], outcome.effects), condition_defs, test_perf)

    state = CaseState(
        demographics=case_state.demographics,
        findings=merge_effects(case_state.findings, outcome.effects),
    )
    conditions = [c for c in condition_defs if c.id in beliefs] if beliefs else list(condition_defs)
    return apply_evidence(seed_priors(state, conditions), state, conditions, test_perf)


def action_cost(costs: ActionCosts, weights: CostWeights) -> float:
    return (
        weights.money * costs.money
        + weights.time_hours * costs.time_hours
        + weights.difficulty * costs.difficulty
        + weights.risk * costs.risk
    )


def score_action_voi(
    beliefs: Beliefs,
    action_def: ActionDef,
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
    cost_weights: CostWeights,
    case_state: Optional[CaseState] = None,
) -> ActionVOI:
    probs = {}
    previews = {}
    for outcome in action_def.outcomes:
        probs[outcome.id] = outcome_probability(outcome, action_def, beliefs, condition_defs, test_perf)
        previews[outcome.id] = outcome_posterior(outcome, beliefs, condition_defs, test_perf, case_state)

    expected_entropy = sum(probs[oid] * entropy(previews[oid]) for oid in probs)
    expected_info_gain = max(0.0, entropy(beliefs) - expected_entropy)
    utility = cost_weights.info_gain_weight * expected_info_gain - action_cost(action_def.costs, cost_weights)

    return ActionVOI(
        expected_info_gain=expected_info_gain,
        expected_outcome_probs=probs,
        utility=utility,
        preview_posteriors=previews,
    )
