"""Narrow the condition set to those relevant to the present findings.

Pruning only removes conditions; the ones that stay go through exactly the
same prior and evidence computation as without the filter. When used, the
filter has to be applied to the whole pipeline before ``seed_priors``.
"""
from typing import Dict, List, Sequence, Set

from .models import CaseState, ConditionDef, FindingDef


def present_finding_ids(case_state: CaseState) -> List[str]:
    return [f.finding_id for f in case_state.findings if f.presence == "present"]


def present_categories(case_state: CaseState, finding_defs: Sequence[FindingDef]) -> Set[str]:
    lookup = {f.id: f for f in finding_defs}
    categories: Set[str] = set()
    for finding_id in present_finding_ids(case_state):
        finding = lookup.get(finding_id)
        if finding is not None:
            categories.update(finding.categories)
    return categories


def should_activate(condition: ConditionDef, present: Set[str], categories: Set[str]) -> bool:
    if condition.activation_rules is None and condition.contexts is None:
        return True

    rules = condition.activation_rules
    if rules is not None:
        if rules.require_any and any(fid in present for fid in rules.require_any):
            return True
        if rules.require_all and all(fid in present for fid in rules.require_all):
            return True

    if condition.contexts and any(ctx in categories for ctx in condition.contexts):
        return True

    return False


def filter_active_conditions(
    case_state: CaseState,
    condition_defs: Sequence[ConditionDef],
    finding_defs: Sequence[FindingDef],
) -> List[ConditionDef]:
    present = set(present_finding_ids(case_state))
    if not present:
        return list(condition_defs)

    categories = present_categories(case_state, finding_defs)
    return [c for c in condition_defs if should_activate(c, present, categories)]


def activation_summary(
    case_state: CaseState,
    all_conditions: Sequence[ConditionDef],
    active_conditions: Sequence[ConditionDef],
    finding_defs: Sequence[FindingDef],
) -> Dict[str, object]:
    total = len(all_conditions)
    return {
        "total_conditions": total,
        "active_conditions": len(active_conditions),
        "reduction_ratio": (total - len(active_conditions)) / total if total else 0.0,
        "present_findings": len(present_finding_ids(case_state)),
        "present_categories": sorted(present_categories(case_state, finding_defs)),
        "activated_by": {
            "rules": sum(1 for c in active_conditions if c.activation_rules is not None),
            "contexts": sum(
                1 for c in active_conditions if c.contexts is not None and c.activation_rules is None
            ),
            "no_rules": sum(
                1 for c in active_conditions if c.contexts is None and c.activation_rules is None
            ),
        },
    }
