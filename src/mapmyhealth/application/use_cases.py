import logging
from typing import Dict, List, Optional

from mapmyhealth.application.ports import ContentPackPort
from mapmyhealth.application.schemas import (
    ActionMap,
    ActionRankingItem,
    AffectedFinding,
    CatalogEntry,
    CatalogOutcome,
    ConditionGraph,
    EngineInputs,
    EngineOutputs,
    OutcomePreview,
    RankedCondition,
    UnknownQuestion,
    ViewModelOutput,
    ViewOptions,
)
from mapmyhealth.application.viewmodel import build_view
from mapmyhealth.domain.activation import filter_active_conditions
from mapmyhealth.domain.beliefs import apply_evidence, seed_priors
from mapmyhealth.domain.compiler import flatten_transitions
from mapmyhealth.domain.influence import outcome_probability
from mapmyhealth.domain.models import CaseState, ContentPack, Demographics, FindingValue
from mapmyhealth.infrastructure.config import Settings


logger = logging.getLogger(__name__)


RECOMMENDATION_TEXT = {
    "urgent-care": "Seek urgent medical care immediately",
    "targeted-care": "Consider targeted medical evaluation and treatment",
    "supportive-care": "Supportive care and symptom management recommended",
    "watchful-waiting": "Monitor symptoms and reassess if condition changes",
}


def to_case_state(inputs: EngineInputs) -> CaseState:
    findings = [
        FindingValue(
            finding_id=kf.id,
            presence=kf.presence,
            value=kf.value if isinstance(kf.value, (int, float)) and not isinstance(kf.value, bool) else None,
            days_since_onset=kf.days_since_onset,
        )
        for kf in inputs.known_findings
    ]

    demographics = None
    patient = inputs.patient_data
    if patient is not None and patient.demographics is not None:
        age = patient.demographics.age
        sex = patient.demographics.sex_at_birth
        if sex not in ("male", "female"):
            sex = None
        if age is not None or sex is not None:
            demographics = Demographics(age=age, sex_at_birth=sex)
    return CaseState(demographics=demographics, findings=findings)


def impact_for(metric: float) -> str:
    if metric > 0.3:
        return "high"
    if metric > 0.1:
        return "medium"
    return "low"


class EngineFacade:
    """Single entry point for hosts: content pack in, engine outputs out."""

    def __init__(self, content_pack_port: ContentPackPort, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.content_pack: ContentPack = content_pack_port.load_content_pack()

    def view_options(self) -> ViewOptions:
        return ViewOptions(
            top_k_actions=self.settings.top_k_actions,
            top_k_unknowns=self.settings.top_k_unknowns,
            plan_depth=self.settings.plan_depth,
            beam_width=self.settings.beam_width,
            use_activation=self.settings.use_activation,
            # EngineOutputs carries no plan preview.
            include_plan=False,
        )

    def evaluate(self, inputs: EngineInputs) -> EngineOutputs:
        case_state = to_case_state(inputs)
        weights = inputs.cost_weights or self.settings.cost_weights
        view = build_view(case_state, self.content_pack, weights, self.view_options())
        return self.to_outputs(view)

    def to_outputs(self, view: ViewModelOutput) -> EngineOutputs:
        top, bottom = view.top_panel, view.bottom_panel

        ranked_conditions = [
            RankedCondition(
                id=rc.id,
                name=rc.label,
                score=rc.probability,
                status_label=rc.status_label,
                rationale=f"{rc.probability * 100:.1f}% probability",
            )
            for rc in top.ranked_conditions
        ]
        unknowns = [
            UnknownQuestion(
                id=u.finding_id,
                prompt=f"Is {u.label} present?",
                impact=impact_for(u.info_metric),
                rationale=u.rationale,
            )
            for u in top.most_informative_unknowns
        ]
        ranking = [
            ActionRankingItem(
                action_id=ar.action_id,
                label=ar.label,
                expected_info_gain=ar.expected_info_gain,
                costs=ar.costs,
                utility=ar.utility,
            )
            for ar in bottom.action_ranking
        ]

        catalog: Dict[str, CatalogEntry] = {}
        for ar in bottom.action_ranking:
            action = self.content_pack.action(ar.action_id)
            if action is None:
                continue
            catalog[action.id] = CatalogEntry(
                name=action.label,
                outcomes=[
                    CatalogOutcome(
                        outcome_id=o.id,
                        description=o.label,
                        affects=[
                            AffectedFinding(id=e.finding_id, effect="confirm" if e.presence == "present" else "refute")
                            for e in o.effects
                        ],
                        effects=o.effects,
                    )
                    for o in action.outcomes
                ],
            )

        action_map = ActionMap(
            catalog=catalog,
            root=bottom.action_tree.root,
            transitions=bottom.action_tree.transitions,
            edges=flatten_transitions(bottom.action_tree),
        )
        return EngineOutputs(
            ranked_conditions=ranked_conditions,
            important_unknowns=unknowns,
            action_map=action_map,
            action_ranking=ranking,
            triage=view.triage,
            engine_recommendation=RECOMMENDATION_TEXT.get(top.recommendation, top.recommendation),
        )

    def get_condition_graph(self, condition_id: str) -> Optional[ConditionGraph]:
        condition = self.content_pack.condition(condition_id)
        if condition is None:
            logger.warning("Condition %s not found", condition_id)
            return None

        targets = {row.target for row in condition.lr_table}
        related_findings = [f for f in self.content_pack.findings if f.id in targets]
        related_ids = {f.id for f in related_findings}
        related_actions = [
            a
            for a in self.content_pack.actions
            if any(e.finding_id in related_ids for o in a.outcomes for e in o.effects)
        ]
        return ConditionGraph(condition=condition, related_findings=related_findings, related_actions=related_actions)

    def get_action_outcomes(self, action_id: str, inputs: Optional[EngineInputs] = None) -> Optional[List[OutcomePreview]]:
        """Outcomes of an action with their predicted probabilities.

        Test outcomes are estimated from test performance against the beliefs
        for ``inputs``, or against the priors when no inputs are given.
        """
        action = self.content_pack.action(action_id)
        if action is None:
            logger.warning("Action %s not found", action_id)
            return None

        case_state = to_case_state(inputs) if inputs is not None else CaseState()
        conditions = self.content_pack.conditions
        if self.settings.use_activation:
            conditions = filter_active_conditions(case_state, conditions, self.content_pack.findings)
        test_perf = self.content_pack.test_performance
        beliefs = apply_evidence(seed_priors(case_state, conditions), case_state, conditions, test_perf)

        return [
            OutcomePreview(
                outcome_id=o.id,
                label=o.label,
                prob_estimate=outcome_probability(o, action, beliefs, conditions, test_perf),
                effects=o.effects,
            )
            for o in action.outcomes
        ]
