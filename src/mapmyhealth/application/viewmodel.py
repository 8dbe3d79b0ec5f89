"""Assemble the two-panel view from the engine modules.

``build_view`` is a pure function of its inputs. Every call recomputes
beliefs from priors; nothing is cached between calls.
"""
import logging
from typing import List, Optional, Sequence

from mapmyhealth.application.schemas import (
    ActionRanking,
    BottomPanelData,
    ConditionRanking,
    FindingLite,
    KnownFindings,
    TopPanelData,
    UnknownFindingInfo,
    ViewModelOutput,
    ViewOptions,
)
from mapmyhealth.domain.activation import filter_active_conditions
from mapmyhealth.domain.beliefs import apply_evidence, band_category, classify, seed_priors
from mapmyhealth.domain.compiler import compile_action_outcomes_for_state, compile_state, explain_condition
from mapmyhealth.domain.influence import most_informative_unknowns
from mapmyhealth.domain.models import (
    Beliefs,
    CaseState,
    ClinicalStateRoot,
    ConditionDef,
    ContentPack,
    CostWeights,
    FindingDef,
    StateTree,
    TriageResult,
)
from mapmyhealth.domain.planner import plan_branches, rank_actions
from mapmyhealth.domain.rules import URGENT_STATE_LABEL, check_red_flags


logger = logging.getLogger(__name__)


def known_findings(case_state: CaseState, finding_defs: Sequence[FindingDef]) -> KnownFindings:
    lookup = {f.id: f for f in finding_defs}
    present: List[FindingLite] = []
    absent: List[FindingLite] = []
    for finding in case_state.findings:
        if finding.presence == "unknown":
            continue
        definition = lookup.get(finding.finding_id)
        lite = FindingLite(
            id=finding.finding_id,
            label=definition.label if definition else finding.finding_id,
            kind=definition.kind if definition else "symptom",
            presence=finding.presence,
            value=finding.value,
            days_since_onset=finding.days_since_onset,
        )
        (present if finding.presence == "present" else absent).append(lite)
    return KnownFindings(present=present, absent=absent)


def condition_rankings(
    beliefs: Beliefs, condition_defs: Sequence[ConditionDef], max_count: int = 5
) -> List[ConditionRanking]:
    lookup = {c.id: c for c in condition_defs}
    rankings = []
    for condition_id, probability in classify(beliefs, condition_defs).top[:max_count]:
        condition = lookup.get(condition_id)
        rankings.append(
            ConditionRanking(
                id=condition_id,
                label=condition.label if condition else condition_id,
                probability=probability,
                status_label=band_category(condition, probability) if condition else "unknown",
            )
        )
    return rankings


def build_urgent_view(triage: TriageResult, case_state: CaseState, content_pack: ContentPack) -> ViewModelOutput:
    top_panel = TopPanelData(
        known_findings=known_findings(case_state, content_pack.findings),
        recommendation="urgent-care",
    )
    root = ClinicalStateRoot(label=URGENT_STATE_LABEL, recommendation="urgent-care")
    bottom_panel = BottomPanelData(action_ranking=[], action_tree=StateTree(root=root))
    return ViewModelOutput(triage=triage, top_panel=top_panel, bottom_panel=bottom_panel)


def build_view(
    case_state: CaseState,
    content_pack: ContentPack,
    cost_weights: Optional[CostWeights] = None,
    options: Optional[ViewOptions] = None,
) -> ViewModelOutput:
    cost_weights = cost_weights or CostWeights()
    options = options or ViewOptions()

    triage = check_red_flags(case_state, content_pack.findings)
    if triage.urgent:
        logger.info("Red flags present (%s); planning skipped", ", ".join(triage.flags or []))
        return build_urgent_view(triage, case_state, content_pack)

    conditions = content_pack.conditions
    if options.use_activation:
        conditions = filter_active_conditions(case_state, conditions, content_pack.findings)
        logger.debug("Activation kept %d of %d conditions", len(conditions), len(content_pack.conditions))

    priors = seed_priors(case_state, conditions)
    beliefs = apply_evidence(priors, case_state, conditions, content_pack.test_performance)
    classification = classify(beliefs, conditions)

    rankings = condition_rankings(beliefs, conditions, 5)
    unknowns = most_informative_unknowns(
        beliefs, conditions, content_pack.findings, options.top_k_unknowns, case_state
    )
    finding_labels = {f.id: f.label for f in content_pack.findings}
    top_panel = TopPanelData(
        known_findings=known_findings(case_state, content_pack.findings),
        ranked_conditions=rankings,
        recommendation=classification.recommendation,
        why=[explain_condition(r.id, case_state, conditions, content_pack.findings) for r in rankings[:3]],
        most_informative_unknowns=[
            UnknownFindingInfo(
                finding_id=u.finding_id,
                label=finding_labels.get(u.finding_id, u.finding_id),
                info_metric=u.metric,
                rationale=u.rationale,
            )
            for u in unknowns
        ],
    )

    ranked = rank_actions(
        case_state,
        beliefs,
        content_pack.actions,
        conditions,
        content_pack.test_performance,
        cost_weights,
        options.top_k_actions,
    )
    action_labels = {a.id: a.label for a in content_pack.actions}
    root = compile_state(beliefs, conditions)
    tree = compile_action_outcomes_for_state(
        root, beliefs, ranked, content_pack.actions, conditions, content_pack.test_performance
    )

    plan = None
    if options.include_plan:
        plan = plan_branches(
            case_state,
            beliefs,
            content_pack.actions,
            conditions,
            content_pack.test_performance,
            cost_weights,
            options.plan_depth,
            options.beam_width,
        )

    bottom_panel = BottomPanelData(
        action_ranking=[
            ActionRanking(
                action_id=r.action_id,
                label=action_labels.get(r.action_id, r.action_id),
                utility=r.utility,
                expected_info_gain=r.expected_info_gain,
                costs=r.costs,
                outcome_probs=r.outcome_probs,
            )
            for r in ranked
        ],
        action_tree=tree,
        plan_preview=plan,
    )
    return ViewModelOutput(triage=triage, top_panel=top_panel, bottom_panel=bottom_panel)
