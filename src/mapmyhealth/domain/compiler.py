"""Turn belief vectors into display-ready clinical states and decision trees."""
import logging
from typing import List, Sequence

from .beliefs import classify, entropy
from .models import (
    ActionDef,
    Beliefs,
    BeliefSummary,
    CaseState,
    Classification,
    ClinicalStateRoot,
    ConditionDef,
    FindingChip,
    FindingDef,
    LrTableExplanation,
    OutcomeState,
    OutcomeTransition,
    RankedAction,
    StateTransition,
    StateTree,
    TestPerformanceDef,
    TransitionEdge,
    UnavailableExplanation,
    WhyExplanation,
)


logger = logging.getLogger(__name__)


ENTROPY_WEIGHT = 0.7
TOP1_WEIGHT = 0.3


def _condition_label(condition_id: str, condition_defs: Sequence[ConditionDef]) -> str:
    condition = next((c for c in condition_defs if c.id == condition_id), None)
    return condition.label if condition is not None else condition_id


def state_label(classification: Classification, condition_defs: Sequence[ConditionDef]) -> str:
    if not classification.top:
        return "No clear diagnosis"

    name = _condition_label(classification.top[0][0], condition_defs)
    label = classification.label
    if label == "highly-likely":
        return f"{name} (highly likely)"
    if label == "likely":
        return f"{name} (likely)"
    if label == "possible":
        return f"Possible {name}"
    if label == "not-likely":
        return f"{name} unlikely"
    if label == "very-unlikely":
        return f"{name} very unlikely"
    return "Diagnosis unclear"


def compile_state(beliefs: Beliefs, condition_defs: Sequence[ConditionDef]) -> ClinicalStateRoot:
    """Clinical state for any belief vector; roots and outcome leaves share it."""
    classification = classify(beliefs, condition_defs)
    top3 = [
        BeliefSummary(condition_id=cid, label=_condition_label(cid, condition_defs), probability=p)
        for cid, p in classification.top[:3]
    ]
    return ClinicalStateRoot(
        label=state_label(classification, condition_defs),
        recommendation=classification.recommendation,
        beliefs_top3=top3,
    )


def delta_certainty(before: Beliefs, after: Beliefs) -> float:
    top1_before = max(before.values(), default=0.0)
    top1_after = max(after.values(), default=0.0)
    return ENTROPY_WEIGHT * (entropy(before) - entropy(after)) + TOP1_WEIGHT * (top1_after - top1_before)


def compile_action_outcomes_for_state(
    root_state: ClinicalStateRoot,
    beliefs: Beliefs,
    ranked_actions: Sequence[RankedAction],
    actions: Sequence[ActionDef],
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
) -> StateTree:
    lookup = {a.id: a for a in actions}
    transitions = []
    for ranked in ranked_actions:
        action = lookup.get(ranked.action_id)
        if action is None:
            logger.warning("Ranked action %s is not in the content pack", ranked.action_id)
            continue

        outcomes = []
        for outcome in action.outcomes:
            posterior = ranked.previews.get(outcome.id, beliefs)
            compiled = compile_state(posterior, condition_defs)
            outcomes.append(
                OutcomeTransition(
                    outcome_id=outcome.id,
                    label=outcome.label,
                    prob_estimate=ranked.outcome_probs.get(outcome.id, 0.0),
                    to=OutcomeState(
                        label=compiled.label,
                        recommendation=compiled.recommendation,
                        beliefs_top3=compiled.beliefs_top3,
                    ),
                    delta_certainty=delta_certainty(beliefs, posterior),
                )
            )
        transitions.append(StateTransition(action_id=action.id, action_label=action.label, outcomes=outcomes))

    return StateTree(root=root_state, transitions=transitions)


def flatten_transitions(tree: StateTree) -> List[TransitionEdge]:
    """Edges root -> action/outcome -> destination state, for graph rendering."""
    return [
        TransitionEdge(
            source=tree.root.state_id,
            action_id=transition.action_id,
            outcome_id=outcome.outcome_id,
            label=f"{transition.action_label}: {outcome.label}",
            probability=outcome.prob_estimate,
            destination=outcome.to.label,
            recommendation=outcome.to.recommendation,
        )
        for transition in tree.transitions
        for outcome in transition.outcomes
    ]


def _strength(lr: float) -> str:
    if lr >= 5.0 or lr <= 0.2:
        return "strong"
    if lr >= 2.0 or lr <= 0.5:
        return "moderate"
    return "weak"


def explain_condition(
    condition_id: str,
    case_state: CaseState,
    condition_defs: Sequence[ConditionDef],
    finding_defs: Sequence[FindingDef],
) -> WhyExplanation:
    """Known findings that pushed a condition up or down, from its LR table."""
    condition = next((c for c in condition_defs if c.id == condition_id), None)
    if condition is None:
        return UnavailableExplanation(condition_id=condition_id, reason="Condition is not in the content pack")

    labels = {f.id: f.label for f in finding_defs}
    explanation = LrTableExplanation(condition_id=condition_id)
    seen = set()
    for row in condition.lr_table:
        if row.target in seen:
            continue
        finding = case_state.finding(row.target)
        if finding is None or finding.presence == "unknown":
            continue
        seen.add(row.target)

        lr = row.lr_pos if finding.presence == "present" else row.lr_neg
        if lr == 1.0:
            continue
        chip = FindingChip(finding_id=row.target, label=labels.get(row.target, row.target), strength=_strength(lr))
        if lr > 1.0:
            explanation.supporting.append(chip)
        else:
            explanation.contradicting.append(chip)
    return explanation
