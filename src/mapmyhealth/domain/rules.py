from typing import List, Sequence

from .models import CaseState, FindingDef, TriageResult


URGENT_STATE_LABEL = "URGENT: Red flags detected"


def red_flag_definitions(finding_defs: Sequence[FindingDef]) -> List[FindingDef]:
    return [f for f in finding_defs if f.is_red_flag]


def is_red_flag(finding_id: str, finding_defs: Sequence[FindingDef]) -> bool:
    return any(f.id == finding_id and f.is_red_flag for f in finding_defs)


def check_red_flags(case_state: CaseState, finding_defs: Sequence[FindingDef]) -> TriageResult:
    """Gate the rest of the engine on red-flag findings.

    Only findings observed as present count; absent or unknown red flags and
    ids missing from the content pack never make a case urgent.
    """
    red_flag_ids = {f.id for f in red_flag_definitions(finding_defs)}

    triggered: List[str] = []
    for finding in case_state.findings:
        if finding.presence == "present" and finding.finding_id in red_flag_ids:
            if finding.finding_id not in triggered:
                triggered.append(finding.finding_id)

    urgent = len(triggered) > 0
    return TriageResult(urgent=urgent, flags=triggered if urgent else None)
