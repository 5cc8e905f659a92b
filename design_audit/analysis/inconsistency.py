"""PC/SP inconsistency detection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from .guidelines import ComponentType
from .locator import ComponentMatch

KIND_EXISTENCE = "existence"

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"
SEVERITY_ORDER = {SEVERITY_HIGH: 0, SEVERITY_MEDIUM: 1, SEVERITY_LOW: 2}


@dataclass
class InconsistencyFinding:
    component_type: str
    kind: str
    severity: str
    description: str
    recommendation: str
    pc_component: Optional[str] = None
    sp_component: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_type": self.component_type,
            "kind": self.kind,
            "severity": self.severity,
            "description": self.description,
            "recommendation": self.recommendation,
            "pc_component": self.pc_component,
            "sp_component": self.sp_component,
        }


def _name_set(matches: Iterable[ComponentMatch]) -> Dict[str, None]:
    # dict keeps first-appearance order
    return dict.fromkeys(m.name.lower() for m in matches)


def detect_inconsistencies(
    pc_matches: List[ComponentMatch],
    sp_matches: List[ComponentMatch],
    component_type: "str | ComponentType",
) -> List[InconsistencyFinding]:
    """Flag component names present on exactly one device variant.

    Names are compared case-insensitively. PC-only findings come first,
    then SP-only ones, each in order of first appearance.
    """
    ctype = ComponentType.parse(component_type).value
    pc_names = _name_set(pc_matches)
    sp_names = _name_set(sp_matches)

    findings: List[InconsistencyFinding] = []
    for name in pc_names:
        if name not in sp_names:
            findings.append(InconsistencyFinding(
                component_type=ctype,
                kind=KIND_EXISTENCE,
                severity=SEVERITY_HIGH,
                description=f"PCには「{name}」が存在しますが、SPには存在しません",
                recommendation="SP版のデザインを追加してください",
                pc_component=name,
            ))
    for name in sp_names:
        if name not in pc_names:
            findings.append(InconsistencyFinding(
                component_type=ctype,
                kind=KIND_EXISTENCE,
                severity=SEVERITY_HIGH,
                description=f"SPには「{name}」が存在しますが、PCには存在しません",
                recommendation="PC版のデザインを追加してください",
                sp_component=name,
            ))
    return findings
