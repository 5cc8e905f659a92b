"""Domain value objects shared by the runner, the clients and the API layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from design_audit import settings


# ─── Vision analysis ─────────────────────────────────────────────────


@dataclass
class VisionAnalysis:
    """The ten fields the vision model reports for one component screenshot."""

    component_name: str = "Unknown"
    device_type: str = "unknown"
    placement: str = "center"
    extracted_content: str = ""
    action_type: str = "unknown"
    compliance_score: int = 0
    violations: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    flow_analysis: str = ""
    summary: str = ""

    @classmethod
    def parse_error(cls, raw_text: str) -> "VisionAnalysis":
        """Sentinel returned when the model reply is not usable JSON."""
        return cls(
            component_name="Parse Error",
            extracted_content=raw_text,
            violations=["Failed to parse response"],
            summary="Analysis failed",
        )

    @property
    def is_parse_error(self) -> bool:
        return self.component_name == "Parse Error" and self.summary == "Analysis failed"


# ─── Run request / outcome ───────────────────────────────────────────


@dataclass
class AnalysisRequest:
    pc_file_key: str
    sp_file_key: str
    pc_page_name: Optional[str] = None
    sp_page_name: Optional[str] = None
    components: List[str] = field(default_factory=lambda: list(settings.DEFAULT_COMPONENTS))
    trigger: str = "manual"


@dataclass
class RunStats:
    total_pc: int = 0
    total_sp: int = 0
    total_inconsistencies: int = 0
    average_pc_score: Optional[float] = None
    average_sp_score: Optional[float] = None

    @classmethod
    def from_scores(
        cls,
        pc_scores: List[int],
        sp_scores: List[int],
        total_inconsistencies: int,
    ) -> "RunStats":
        return cls(
            total_pc=len(pc_scores),
            total_sp=len(sp_scores),
            total_inconsistencies=total_inconsistencies,
            average_pc_score=_mean(pc_scores),
            average_sp_score=_mean(sp_scores),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _mean(values: List[int]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


@dataclass
class RunOutcome:
    run_id: str
    status: str
    stats: Optional[RunStats] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == "completed"
