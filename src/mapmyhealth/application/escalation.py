"""Escalations triggered by the findings an applied outcome introduces."""
import logging
from typing import Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel

from mapmyhealth.domain.models import CaseState, ContentPack, FindingEffect, TriageResult


logger = logging.getLogger(__name__)


class EscalationRule(BaseModel):
    action: Literal["urgent_care", "reevaluate", "add_actions", "change_triage"]
    reason: str = ""
    urgent: Optional[bool] = None
    flags: List[str] = []
    action_ids: List[str] = []
    priority: Literal["high", "medium", "low"] = "medium"


class ActionChain(BaseModel):
    id: str
    trigger: str
    required_preceding_action: Optional[str] = None
    chained_actions: List[str] = []
    automatic_progression: bool = False


class EscalationAction(BaseModel):
    type: Literal["urgent_care", "add_actions", "change_triage", "notify_provider"]
    reason: str
    rule: EscalationRule


class EscalationResult(BaseModel):
    escalations: List[EscalationAction] = []
    new_triage: TriageResult
    additional_actions: List[str] = []
    requires_reevaluation: bool = False
    escalation_reason: Optional[str] = None


DEFAULT_RULES: Dict[str, List[EscalationRule]] = {
    "symptom_worsening": [
        EscalationRule(
            action="change_triage",
            urgent=True,
            flags=["symptom_progression"],
            reason="Symptoms worsening after observation period",
        ),
        EscalationRule(
            action="add_actions",
            action_ids=["urgent_medical_evaluation", "consider_er_visit"],
            priority="high",
        ),
        EscalationRule(action="reevaluate", reason="Clinical deterioration requires reassessment"),
    ],
    "red_flag_detected": [
        EscalationRule(
            action="urgent_care",
            urgent=True,
            flags=["red_flag"],
            reason="Red flag symptoms detected - immediate medical attention required",
        ),
    ],
}

DEFAULT_CHAINS: List[ActionChain] = [
    ActionChain(
        id="worsening_escalation_chain",
        trigger="symptom_worsening",
        required_preceding_action="wait_observe_48h",
        chained_actions=["urgent_medical_evaluation", "reassess_symptoms", "consider_er_visit"],
    ),
    ActionChain(
        id="urgent_care_chain",
        trigger="red_flag_detected",
        chained_actions=["immediate_medical_attention", "emergency_services_contact"],
        automatic_progression=True,
    ),
]


class EscalationProcessor:
    def __init__(
        self,
        content_pack: ContentPack,
        rules: Optional[Dict[str, List[EscalationRule]]] = None,
        chains: Optional[List[ActionChain]] = None,
    ):
        self.content_pack = content_pack
        self.rules = DEFAULT_RULES if rules is None else rules
        self.chains = DEFAULT_CHAINS if chains is None else chains

    def should_process(self, effects: Sequence[FindingEffect]) -> bool:
        return any(e.presence == "present" and e.finding_id in self.rules for e in effects)

    def process_outcome(
        self,
        action_id: str,
        effects: Sequence[FindingEffect],
        current_triage: TriageResult,
        case_state: CaseState,
    ) -> EscalationResult:
        escalations: List[EscalationAction] = []
        triage = current_triage
        additional: List[str] = []
        reevaluate = False
        reason = None

        for effect in effects:
            if effect.presence != "present":
                continue
            rules = self.rules.get(effect.finding_id)
            if not rules:
                continue
            reason = f"Escalation triggered by {effect.finding_id}"

            for rule in rules:
                if rule.action == "change_triage":
                    triage = TriageResult(
                        urgent=rule.urgent if rule.urgent is not None else triage.urgent,
                        flags=(triage.flags or []) + rule.flags,
                    )
                    escalations.append(EscalationAction(type="change_triage", reason=rule.reason or reason, rule=rule))
                elif rule.action == "add_actions":
                    additional.extend(rule.action_ids)
                    escalations.append(
                        EscalationAction(
                            type="add_actions",
                            reason=rule.reason or f"Adding escalation actions due to {effect.finding_id}",
                            rule=rule,
                        )
                    )
                elif rule.action == "urgent_care":
                    triage = TriageResult(urgent=True, flags=(triage.flags or []) + rule.flags)
                    escalations.append(
                        EscalationAction(type="urgent_care", reason=rule.reason or "Urgent care required", rule=rule)
                    )
                elif rule.action == "reevaluate":
                    reevaluate = True
                    escalations.append(
                        EscalationAction(
                            type="notify_provider", reason=rule.reason or "Clinical reassessment needed", rule=rule
                        )
                    )

        for chain in self.applicable_chains(effects, case_state):
            additional.extend(chain.chained_actions)
            if chain.automatic_progression:
                reevaluate = True

        known = {a.id for a in self.content_pack.actions}
        deduped: List[str] = []
        for aid in additional:
            if aid in deduped:
                continue
            if aid not in known:
                logger.warning("Escalation after %s suggests unknown action %s; skipped", action_id, aid)
                continue
            deduped.append(aid)

        return EscalationResult(
            escalations=escalations,
            new_triage=triage,
            additional_actions=deduped,
            requires_reevaluation=reevaluate,
            escalation_reason=reason,
        )

    def applicable_chains(self, effects: Sequence[FindingEffect], case_state: CaseState) -> List[ActionChain]:
        triggered = {e.finding_id for e in effects if e.presence == "present"}
        return [
            chain
            for chain in self.chains
            if chain.trigger in triggered
            and (not chain.required_preceding_action or case_state.has_completed(chain.required_preceding_action))
        ]
