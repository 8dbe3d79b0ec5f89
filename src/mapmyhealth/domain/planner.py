"""Rank next actions and preview short multi-step plans."""
import logging
from typing import Dict, List, Optional, Sequence

from .beliefs import classify, is_confirmed
from .influence import merge_effects, score_action_voi
from .models import (
    ActionCosts,
    ActionDef,
    ActionOutcome,
    Beliefs,
    Branch,
    BranchStep,
    CaseState,
    CompletedAction,
    ConditionDef,
    CostWeights,
    FindingDef,
    RankedAction,
    TestPerformanceDef,
)
from .rules import check_red_flags


logger = logging.getLogger(__name__)


def is_action_available(action: ActionDef, case_state: CaseState) -> bool:
    # An action is retired once it appears in completed_actions.
    if case_state.has_completed(action.id):
        return False

    pre = action.preconditions
    if any(not case_state.has_present(fid) for fid in pre.require_findings):
        return False
    if any(case_state.has_present(fid) for fid in pre.forbid_findings):
        return False
    if any(not case_state.has_completed(aid) for aid in pre.require_actions):
        return False
    return True


def restates_known_findings(action: ActionDef, case_state: CaseState) -> bool:
    """True when every outcome effect targets a finding the case already records."""
    effect_ids = {e.finding_id for o in action.outcomes for e in o.effects}
    if not effect_ids:
        return False
    known = {f.finding_id for f in case_state.findings if f.presence != "unknown"}
    return effect_ids <= known


def rank_actions(
    case_state: CaseState,
    beliefs: Beliefs,
    actions: Sequence[ActionDef],
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
    cost_weights: CostWeights,
    k: int = 3,
) -> List[RankedAction]:
    ranked = []
    for action in actions:
        if not is_action_available(action, case_state):
            continue
        if restates_known_findings(action, case_state):
            logger.debug("Action %s only restates known findings; skipped", action.id)
            continue
        voi = score_action_voi(beliefs, action, condition_defs, test_perf, cost_weights, case_state)
        ranked.append(
            RankedAction(
                action_id=action.id,
                utility=voi.utility,
                expected_info_gain=voi.expected_info_gain,
                costs=action.costs,
                outcome_probs=voi.expected_outcome_probs,
                previews=voi.preview_posteriors,
            )
        )

    # Stable: equal utilities keep the content pack's order.
    ranked.sort(key=lambda r: r.utility, reverse=True)
    return ranked[:k]


def apply_outcome_effects(case_state: CaseState, action_id: str, outcome: ActionOutcome) -> CaseState:
    """New case state with an outcome's effects and the completed action appended."""
    findings = merge_effects(case_state.findings, outcome.effects)
    completed = list(case_state.completed_actions)
    completed.append(CompletedAction(action_id=action_id, outcome_id=outcome.id))
    return CaseState(demographics=case_state.demographics, findings=findings, completed_actions=completed)


def simulate_branch_state(case_state: CaseState, branch: Branch, actions: Sequence[ActionDef]) -> CaseState:
    lookup: Dict[str, ActionDef] = {a.id: a for a in actions}
    state = case_state
    for step in branch.steps:
        action = lookup.get(step.action_id)
        outcome = action.outcome(step.outcome_id) if action is not None and step.outcome_id else None
        if outcome is None:
            logger.warning("Branch %s references unknown outcome %s/%s", branch.id, step.action_id, step.outcome_id)
            continue
        state = apply_outcome_effects(state, step.action_id, outcome)
    return state


def should_stop_branch(
    branch: Branch,
    state: CaseState,
    condition_defs: Sequence[ConditionDef],
    red_flag_findings: Optional[Sequence[FindingDef]] = None,
) -> bool:
    if is_confirmed(classify(branch.leaf_posterior_preview, condition_defs).label):
        return True
    if red_flag_findings is not None and check_red_flags(state, red_flag_findings).urgent:
        return True
    return False


def _child_branch(parent: Branch, action: ActionDef, outcome: ActionOutcome, ranked: RankedAction) -> Branch:
    parent_costs = parent.steps[-1].accum_costs if parent.steps else ActionCosts()
    posterior = ranked.previews.get(outcome.id, parent.leaf_posterior_preview)
    probability = ranked.outcome_probs.get(outcome.id, 0.0)
    step = BranchStep(
        action_id=action.id,
        outcome_id=outcome.id,
        predicted_outcome_probs=ranked.outcome_probs,
        posterior_preview=posterior,
        accum_costs=parent_costs + action.costs,
    )
    return Branch(
        id=f"{parent.id}-{action.id}-{outcome.id}",
        steps=parent.steps + [step],
        # Linear approximation, not a full expectimax over downstream utility.
        expected_utility=parent.expected_utility + probability * ranked.utility,
        leaf_posterior_preview=posterior,
    )


def plan_branches(
    case_state: CaseState,
    beliefs: Beliefs,
    actions: Sequence[ActionDef],
    condition_defs: Sequence[ConditionDef],
    test_perf: Sequence[TestPerformanceDef],
    cost_weights: CostWeights,
    depth: int = 2,
    beam_width: int = 3,
    red_flag_findings: Optional[Sequence[FindingDef]] = None,
) -> List[Branch]:
    """Depth-limited beam search over action sequences.

    A branch stops when its posterior classifies as highly likely. Passing
    ``red_flag_findings`` also stops branches whose simulated findings contain
    a present red flag; by default that check is off. Branches with no
    available actions are finalized as they are. Callers bound the work by
    capping ``depth`` and ``beam_width``.
    """
    lookup = {a.id: a for a in actions}
    finished: List[Branch] = []
    frontier = [Branch(id="branch-0", steps=[], expected_utility=0.0, leaf_posterior_preview=beliefs)]

    for level in range(depth):
        children: List[Branch] = []
        for branch in frontier:
            state = simulate_branch_state(case_state, branch, actions)
            if should_stop_branch(branch, state, condition_defs, red_flag_findings):
                finished.append(branch)
                continue

            ranked_actions = rank_actions(
                state, branch.leaf_posterior_preview, actions, condition_defs, test_perf, cost_weights, beam_width
            )
            if not ranked_actions:
                finished.append(branch)
                continue

            for ranked in ranked_actions:
                action = lookup[ranked.action_id]
                for outcome in action.outcomes:
                    children.append(_child_branch(branch, action, outcome, ranked))

        children.sort(key=lambda b: b.expected_utility, reverse=True)
        frontier = children[:beam_width]
        logger.debug("Plan level %d: %d open branches, %d finished", level, len(frontier), len(finished))
        if not frontier:
            break

    finished.extend(frontier)
    return finished
