import logging
from typing import List, Literal, Optional

from pydantic import BaseModel

from mapmyhealth.application.escalation import EscalationProcessor, EscalationResult
from mapmyhealth.application.schemas import ViewModelOutput, ViewOptions
from mapmyhealth.application.viewmodel import build_view
from mapmyhealth.domain.models import (
    CaseState,
    ContentPack,
    CostWeights,
    Demographics,
    FindingValue,
    Presence,
)
from mapmyhealth.domain.planner import apply_outcome_effects, is_action_available
from mapmyhealth.domain.rules import check_red_flags


logger = logging.getLogger(__name__)


class ApplyOutcomeResult(BaseModel):
    status: Literal["applied", "not-found", "unavailable"]
    message: str = ""
    escalation: Optional[EscalationResult] = None


class CaseSession:
    """Caller-owned case state between engine evaluations.

    Every mutation leaves the next ``view()`` to recompute from scratch. The
    session is not thread-safe; one recompute per session at a time.
    """

    def __init__(
        self,
        content_pack: ContentPack,
        cost_weights: Optional[CostWeights] = None,
        options: Optional[ViewOptions] = None,
        strict: bool = False,
    ):
        self.content_pack = content_pack
        self.cost_weights = cost_weights or CostWeights()
        self.options = options or ViewOptions()
        self.strict = strict
        self.escalations = EscalationProcessor(content_pack)
        self.case_state = CaseState()
        self.history: List[ApplyOutcomeResult] = []

    def reset(self, demographics: Optional[Demographics] = None):
        self.case_state = CaseState(demographics=demographics)
        self.history = []

    def set_demographics(self, demographics: Optional[Demographics]) -> None:
        self.case_state = self.case_state.model_copy(update={"demographics": demographics})

    def add_finding(
        self,
        finding_id: str,
        presence: Presence = "present",
        value: Optional[float] = None,
        days_since_onset: Optional[float] = None,
    ) -> None:
        """Record a finding, replacing any earlier value for the same id."""
        if self.content_pack.finding(finding_id) is None:
            logger.warning("Finding %s is not in the content pack; it will not affect beliefs", finding_id)
        findings = [f for f in self.case_state.findings if f.finding_id != finding_id]
        findings.append(
            FindingValue(finding_id=finding_id, presence=presence, value=value, days_since_onset=days_since_onset)
        )
        self.case_state = self.case_state.model_copy(update={"findings": findings})

    def remove_finding(self, finding_id: str) -> bool:
        findings = [f for f in self.case_state.findings if f.finding_id != finding_id]
        removed = len(findings) != len(self.case_state.findings)
        self.case_state = self.case_state.model_copy(update={"findings": findings})
        return removed

    def apply_action_outcome(self, action_id: str, outcome_id: str) -> ApplyOutcomeResult:
        action = self.content_pack.action(action_id)
        if action is None:
            return self._record(ApplyOutcomeResult(status="not-found", message=f"Unknown action {action_id}"))
        outcome = action.outcome(outcome_id)
        if outcome is None:
            return self._record(
                ApplyOutcomeResult(status="not-found", message=f"Action {action_id} has no outcome {outcome_id}")
            )
        if self.strict and not is_action_available(action, self.case_state):
            return self._record(
                ApplyOutcomeResult(status="unavailable", message=f"Action {action_id} is not available for this case")
            )

        previous = self.case_state
        self.case_state = apply_outcome_effects(previous, action_id, outcome)

        escalation = None
        if self.escalations.should_process(outcome.effects):
            escalation = self.escalations.process_outcome(
                action_id,
                outcome.effects,
                check_red_flags(previous, self.content_pack.findings),
                self.case_state,
            )
            logger.info("Outcome %s/%s escalated: %s", action_id, outcome_id, escalation.escalation_reason)

        return self._record(
            ApplyOutcomeResult(status="applied", message=f"{action.label}: {outcome.label}", escalation=escalation)
        )

    def view(self) -> ViewModelOutput:
        return build_view(self.case_state, self.content_pack, self.cost_weights, self.options)

    def _record(self, result: ApplyOutcomeResult) -> ApplyOutcomeResult:
        if result.status != "applied":
            logger.warning("Outcome not applied: %s", result.message)
        self.history.append(result)
        return result
