from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from mapmyhealth.domain.models import (
    ActionCosts,
    ActionDef,
    Branch,
    ClinicalStateRoot,
    ConditionDef,
    CostWeights,
    FindingDef,
    FindingEffect,
    FindingKind,
    Presence,
    Recommendation,
    StateTransition,
    StateTree,
    StatusLabel,
    TransitionEdge,
    TriageResult,
    WhyExplanation,
)


# ---------------------------------------------------------------------------
# View model (two panels)
# ---------------------------------------------------------------------------


class ViewOptions(BaseModel):
    top_k_actions: int = Field(3, ge=0)
    top_k_unknowns: int = Field(5, ge=0)
    plan_depth: int = Field(2, ge=0)
    beam_width: int = Field(3, ge=1)
    include_plan: bool = True
    use_activation: bool = False


class FindingLite(BaseModel):
    id: str
    label: str
    kind: FindingKind
    presence: Presence
    value: Optional[float] = None
    days_since_onset: Optional[float] = None


class KnownFindings(BaseModel):
    present: List[FindingLite] = []
    absent: List[FindingLite] = []


class ConditionRanking(BaseModel):
    id: str
    label: str
    probability: float = Field(..., ge=0.0, le=1.0)
    status_label: StatusLabel


class UnknownFindingInfo(BaseModel):
    finding_id: str
    label: str
    info_metric: float = Field(..., ge=0.0)
    rationale: str


class ActionRanking(BaseModel):
    action_id: str
    label: str
    utility: float
    expected_info_gain: float = Field(..., ge=0.0)
    costs: ActionCosts
    outcome_probs: Dict[str, float]


class TopPanelData(BaseModel):
    known_findings: KnownFindings
    ranked_conditions: List[ConditionRanking] = []
    recommendation: Recommendation
    why: List[WhyExplanation] = []
    most_informative_unknowns: List[UnknownFindingInfo] = []


class BottomPanelData(BaseModel):
    action_ranking: List[ActionRanking] = []
    action_tree: StateTree
    plan_preview: Optional[List[Branch]] = None


class ViewModelOutput(BaseModel):
    triage: TriageResult
    top_panel: TopPanelData
    bottom_panel: BottomPanelData


# ---------------------------------------------------------------------------
# Engine facade boundary
# ---------------------------------------------------------------------------


class PatientDemographics(BaseModel):
    age: Optional[float] = Field(None, ge=0, le=120)
    sex_at_birth: Optional[Literal["male", "female", "other"]] = None


class PatientData(BaseModel):
    demographics: Optional[PatientDemographics] = None
    vitals: Dict[str, float | str] = {}
    labs: Dict[str, float | str] = {}
    history: Dict[str, Any] = {}
    medications: List[str] = []
    allergies: List[str] = []


class KnownFinding(BaseModel):
    id: str
    presence: Literal["present", "absent"]
    value: Optional[Any] = None
    onset: Optional[str] = None
    days_since_onset: Optional[float] = None
    severity: Optional[str] = None
    source: Literal["user", "agent", "patientData", "system"] = "user"


class EngineInputs(BaseModel):
    known_findings: List[KnownFinding] = []
    patient_data: Optional[PatientData] = None
    cost_weights: Optional[CostWeights] = None


class RankedCondition(BaseModel):
    id: str
    name: str
    score: float = Field(..., ge=0.0, le=1.0)
    status_label: StatusLabel
    rationale: Optional[str] = None


class UnknownQuestion(BaseModel):
    id: str
    prompt: str
    impact: Literal["high", "medium", "low"]
    rationale: Optional[str] = None


class AffectedFinding(BaseModel):
    id: str
    effect: Literal["confirm", "refute", "quantify"]


class CatalogOutcome(BaseModel):
    outcome_id: str
    description: str
    affects: List[AffectedFinding] = []
    effects: List[FindingEffect] = []


class CatalogEntry(BaseModel):
    name: str
    outcomes: List[CatalogOutcome] = []


class ActionMap(BaseModel):
    catalog: Dict[str, CatalogEntry] = {}
    root: ClinicalStateRoot
    transitions: List[StateTransition] = []
    edges: List[TransitionEdge] = []


class ActionRankingItem(BaseModel):
    action_id: str
    label: str
    expected_info_gain: float
    costs: ActionCosts
    utility: float


class EngineOutputs(BaseModel):
    ranked_conditions: List[RankedCondition] = []
    important_unknowns: List[UnknownQuestion] = []
    action_map: ActionMap
    action_ranking: List[ActionRankingItem] = []
    triage: TriageResult
    engine_recommendation: str


class OutcomePreview(BaseModel):
    outcome_id: str
    label: str
    prob_estimate: float
    effects: List[FindingEffect] = []


class ConditionGraph(BaseModel):
    condition: ConditionDef
    related_findings: List[FindingDef] = []
    related_actions: List[ActionDef] = []
