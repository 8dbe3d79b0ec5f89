from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, validator


Presence = Literal["present", "absent", "unknown"]
Recommendation = Literal["urgent-care", "targeted-care", "supportive-care", "watchful-waiting"]
BandCategory = Literal["highly-likely", "likely", "possible", "not-likely", "very-unlikely"]
StatusLabel = Literal["highly-likely", "likely", "possible", "not-likely", "very-unlikely", "unknown"]
FindingKind = Literal["symptom", "testFinding", "vital", "history", "redFlag"]
ActionKind = Literal["Test", "Question", "WaitObserve", "TrialTreatment"]

# Condition id -> probability. Iteration order follows condition declaration order.
Beliefs = Dict[str, float]


class SourceMeta(BaseModel):
    source: str
    year: Optional[int] = None
    note: Optional[str] = None


# ---------------------------------------------------------------------------
# Content pack
# ---------------------------------------------------------------------------


class FindingDef(BaseModel):
    id: str
    label: str
    kind: FindingKind = "symptom"
    units: Optional[str] = None
    is_red_flag: bool = False
    categories: List[str] = []


class AgeRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class DemographicPrior(BaseModel):
    age_range: Optional[AgeRange] = None
    sex_at_birth: Optional[Literal["male", "female"]] = None
    season: Optional[Literal["spring", "summer", "fall", "winter"]] = None
    prior: float = Field(..., ge=0.0)


class ConditionPriors(BaseModel):
    default: float = Field(..., ge=0.0)
    by_demo: List[DemographicPrior] = []


class ProbabilityBand(BaseModel):
    category: BandCategory
    min_inclusive: float
    max_exclusive: float

    def contains(self, probability: float) -> bool:
        if self.min_inclusive <= probability < self.max_exclusive:
            return True
        # The last band of a partition of [0, 1] has to hold certainty too.
        return probability >= 1.0 and self.max_exclusive >= 1.0 and probability >= self.min_inclusive


class LikelihoodRatio(BaseModel):
    target: str
    lr_pos: float = Field(..., ge=0.0)
    lr_neg: float = Field(..., ge=0.0)
    note: Optional[str] = None
    source: Optional[SourceMeta] = None


class ActivationRules(BaseModel):
    require_any: List[str] = []
    require_all: List[str] = []


class ConditionDef(BaseModel):
    id: str
    label: str
    description: str = ""
    priors: ConditionPriors
    probability_bands: List[ProbabilityBand] = []
    lr_table: List[LikelihoodRatio] = []
    recommendations_by_band: Optional[Dict[BandCategory, Recommendation]] = None
    activation_rules: Optional[ActivationRules] = None
    contexts: Optional[List[str]] = None

    @validator("probability_bands")
    def sort_bands(cls, v: List[ProbabilityBand]):
        return sorted(v, key=lambda band: band.min_inclusive)


class FindingEffect(BaseModel):
    finding_id: str
    presence: Presence
    value: Optional[float] = None
    days_since_onset: Optional[float] = None


class ActionPreconditions(BaseModel):
    require_findings: List[str] = []
    forbid_findings: List[str] = []
    require_actions: List[str] = []


class ActionCosts(BaseModel):
    money: float = 0.0
    time_hours: float = 0.0
    difficulty: float = 0.0
    risk: float = 0.0

    def __add__(self, other: "ActionCosts") -> "ActionCosts":
        return ActionCosts(
            money=self.money + other.money,
            time_hours=self.time_hours + other.time_hours,
            difficulty=self.difficulty + other.difficulty,
            risk=self.risk + other.risk,
        )


class TestBinding(BaseModel):
    finding_id_positive: str
    finding_id_negative: str
    performance_ref_id: str


class ActionOutcome(BaseModel):
    id: str
    label: str
    probability_hint: Optional[float] = Field(None, ge=0.0, le=1.0)
    effects: List[FindingEffect] = []


class ActionDef(BaseModel):
    id: str
    label: str
    kind: ActionKind
    preconditions: ActionPreconditions = ActionPreconditions()
    costs: ActionCosts = ActionCosts()
    test_binding: Optional[TestBinding] = None
    outcomes: List[ActionOutcome] = []

    def outcome(self, outcome_id: str) -> Optional[ActionOutcome]:
        return next((o for o in self.outcomes if o.id == outcome_id), None)


class DaysRange(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None

    def contains(self, days: float) -> bool:
        return (self.min is None or days >= self.min) and (self.max is None or days <= self.max)


class PiecewisePerformance(BaseModel):
    days_range: DaysRange
    sensitivity: float = Field(..., ge=0.0, le=1.0)
    specificity: float = Field(..., ge=0.0, le=1.0)


class TestPerformanceDef(BaseModel):
    id: str
    test_id: str
    sensitivity: float = Field(..., ge=0.0, le=1.0)
    specificity: float = Field(..., ge=0.0, le=1.0)
    piecewise_by_days_since_onset: List[PiecewisePerformance] = []
    finding_ids: List[str] = []
    target_condition: Optional[str] = None
    source: Optional[SourceMeta] = None

    def covers(self, finding_id: str) -> bool:
        return finding_id == self.id or finding_id in self.finding_ids


class PackMeta(BaseModel):
    name: str
    version: str
    jurisdiction: Optional[str] = None
    source: Optional[SourceMeta] = None


class ContentPack(BaseModel):
    meta: PackMeta
    findings: List[FindingDef] = []
    conditions: List[ConditionDef] = []
    actions: List[ActionDef] = []
    test_performance: List[TestPerformanceDef] = []

    def finding(self, finding_id: str) -> Optional[FindingDef]:
        return next((f for f in self.findings if f.id == finding_id), None)

    def condition(self, condition_id: str) -> Optional[ConditionDef]:
        return next((c for c in self.conditions if c.id == condition_id), None)

    def action(self, action_id: str) -> Optional[ActionDef]:
        return next((a for a in self.actions if a.id == action_id), None)


# ---------------------------------------------------------------------------
# Case state
# ---------------------------------------------------------------------------


class Demographics(BaseModel):
    age: Optional[float] = Field(None, ge=0, le=120)
    sex_at_birth: Optional[Literal["male", "female"]] = None
    pregnant: Optional[bool] = None
    season: Optional[Literal["spring", "summer", "fall", "winter"]] = None


class FindingValue(BaseModel):
    finding_id: str
    presence: Presence
    value: Optional[float] = None
    days_since_onset: Optional[float] = None

    @validator("finding_id")
    def validate_finding_id(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("finding_id must not be empty")
        return v


class CompletedAction(BaseModel):
    action_id: str
    outcome_id: str
    at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CaseState(BaseModel):
    demographics: Optional[Demographics] = None
    findings: List[FindingValue] = []
    completed_actions: List[CompletedAction] = []

    def finding(self, finding_id: str) -> Optional[FindingValue]:
        return next((f for f in self.findings if f.finding_id == finding_id), None)

    def has_present(self, finding_id: str) -> bool:
        found = self.finding(finding_id)
        return found is not None and found.presence == "present"

    def has_completed(self, action_id: str) -> bool:
        return any(a.action_id == action_id for a in self.completed_actions)


class CostWeights(BaseModel):
    info_gain_weight: float = 1.0
    money: float = 0.01
    time_hours: float = 0.1
    difficulty: float = 0.2
    risk: float = 0.5


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------


class TriageResult(BaseModel):
    urgent: bool = False
    flags: Optional[List[str]] = None


class Classification(BaseModel):
    top: List[Tuple[str, float]] = []
    label: StatusLabel = "unknown"
    recommendation: Recommendation = "watchful-waiting"


class UnknownInfo(BaseModel):
    finding_id: str
    metric: float
    rationale: str


class ActionVOI(BaseModel):
    expected_info_gain: float
    expected_outcome_probs: Dict[str, float]
    utility: float
    preview_posteriors: Dict[str, Beliefs]


class RankedAction(BaseModel):
    action_id: str
    utility: float
    expected_info_gain: float
    costs: ActionCosts
    outcome_probs: Dict[str, float]
    previews: Dict[str, Beliefs]


class BranchStep(BaseModel):
    action_id: str
    outcome_id: Optional[str] = None
    predicted_outcome_probs: Dict[str, float]
    posterior_preview: Beliefs
    accum_costs: ActionCosts


class Branch(BaseModel):
    id: str
    steps: List[BranchStep] = []
    expected_utility: float = 0.0
    leaf_posterior_preview: Beliefs


class BeliefSummary(BaseModel):
    condition_id: str
    label: str
    probability: float


class ClinicalStateRoot(BaseModel):
    state_id: Literal["root"] = "root"
    label: str
    recommendation: Recommendation
    beliefs_top3: List[BeliefSummary] = []


class OutcomeState(BaseModel):
    label: str
    recommendation: Recommendation
    beliefs_top3: List[BeliefSummary] = []


class OutcomeTransition(BaseModel):
    outcome_id: str
    label: str
    prob_estimate: float
    to: OutcomeState
    delta_certainty: float


class StateTransition(BaseModel):
    action_id: str
    action_label: str
    outcomes: List[OutcomeTransition] = []


class StateTree(BaseModel):
    root: ClinicalStateRoot
    transitions: List[StateTransition] = []


class TransitionEdge(BaseModel):
    source: str
    action_id: str
    outcome_id: str
    label: str
    probability: float
    destination: str
    recommendation: Recommendation


class FindingChip(BaseModel):
    finding_id: str
    label: str
    strength: Literal["strong", "moderate", "weak"]


class LrTableExplanation(BaseModel):
    kind: Literal["lr-table"] = "lr-table"
    condition_id: str
    supporting: List[FindingChip] = []
    contradicting: List[FindingChip] = []


class UnavailableExplanation(BaseModel):
    kind: Literal["unavailable"] = "unavailable"
    condition_id: str
    reason: str


WhyExplanation = LrTableExplanation | UnavailableExplanation
