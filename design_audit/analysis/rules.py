"""Rule-based guideline scoring for a single analysed component."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .guidelines import ComponentType, Guideline, get_guideline

logger = logging.getLogger("design_audit.analysis.rules")

FULL_SCORE = 100

TOAST_LENGTH_PENALTY = 20
TOAST_TYPE_PENALTY = 15
TOAST_PLACEMENT_PENALTY = 10
ACCORDION_HEADER_PENALTY = 25
ACCORDION_ICON_PENALTY = 15
BOTTOMSHEET_PC_PENALTY = 30
BOTTOMSHEET_HEIGHT_PENALTY = 20

_LENGTH_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*([a-z%]*)\s*$", re.IGNORECASE)


@dataclass
class GuidelineCheck:
    violations: List[str] = field(default_factory=list)
    score: int = FULL_SCORE

    def deduct(self, violation: str, points: int) -> None:
        self.violations.append(violation)
        self.score -= points

    def to_dict(self) -> Dict[str, Any]:
        return {"violations": list(self.violations), "score": self.score}


def check_guideline(
    component_type: "str | ComponentType",
    analysis: Mapping[str, Any],
) -> GuidelineCheck:
    """Score an analysis object against its component's guideline.

    Starts at 100, applies every matching deduction independently and clamps
    the total at 0. Unsupported types are never penalised.

    Args:
        component_type: Component key (``toast``, ``accordion``, ``bottomsheet``).
        analysis: Snake-case fields such as ``extracted_content``, ``type``,
            ``placement``, ``has_header``, ``has_icon``, ``device_type`` and
            ``height``.

    Returns:
        GuidelineCheck with violation texts and the clamped score.
    """
    ctype = ComponentType.parse(component_type)
    guideline = get_guideline(ctype)
    result = GuidelineCheck()

    if ctype is ComponentType.TOAST:
        _check_toast(guideline, analysis, result)
    elif ctype is ComponentType.ACCORDION:
        _check_accordion(analysis, result)
    elif ctype is ComponentType.BOTTOMSHEET:
        _check_bottomsheet(guideline, analysis, result)

    result.score = max(0, result.score)
    return result


def _check_toast(guideline: Guideline, analysis: Mapping[str, Any], result: GuidelineCheck) -> None:
    content = analysis.get("extracted_content") or ""
    max_length = guideline.message_max_length
    if max_length is not None and len(content) > max_length:
        result.deduct(
            f"メッセージが長すぎます（{len(content)}文字 > {max_length}文字）",
            TOAST_LENGTH_PENALTY,
        )

    toast_type = analysis.get("type")
    if toast_type and toast_type not in guideline.variant_types:
        result.deduct(f"無効なタイプ: {toast_type}", TOAST_TYPE_PENALTY)

    placement = analysis.get("placement")
    if placement:
        lowered = str(placement).lower()
        if not any(p.lower() in lowered for p in guideline.allowed_placements):
            result.deduct(f"推奨されない配置: {placement}", TOAST_PLACEMENT_PENALTY)


def _check_accordion(analysis: Mapping[str, Any], result: GuidelineCheck) -> None:
    if not analysis.get("has_header"):
        result.deduct("ヘッダーが見つかりません", ACCORDION_HEADER_PENALTY)
    if not analysis.get("has_icon"):
        result.deduct("展開/折りたたみアイコンが見つかりません", ACCORDION_ICON_PENALTY)


def _check_bottomsheet(guideline: Guideline, analysis: Mapping[str, Any], result: GuidelineCheck) -> None:
    if str(analysis.get("device_type") or "").lower() == "pc":
        result.deduct(
            "PCでのBottomsheet使用は推奨されません（Modalを使用してください）",
            BOTTOMSHEET_PC_PENALTY,
        )

    height = analysis.get("height")
    if height and guideline.max_height and _exceeds(height, guideline.max_height):
        result.deduct(f"高さが最大値を超えています: {height}", BOTTOMSHEET_HEIGHT_PENALTY)


def parse_length(value: Any, default_unit: str = "") -> Optional[Tuple[float, str]]:
    """Parse ``"95vh"`` / ``"640px"`` / ``640`` into ``(number, unit)``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value), default_unit
    match = _LENGTH_RE.match(str(value))
    if not match:
        return None
    number, unit = match.groups()
    return float(number), (unit.lower() or default_unit)


def _exceeds(height: Any, maximum: str) -> bool:
    limit = parse_length(maximum)
    if limit is None:
        return False
    measured = parse_length(height, default_unit=limit[1])
    if measured is None or measured[1] != limit[1]:
        logger.debug(f"height {height!r} not comparable with {maximum!r}")
        return False
    return measured[0] > limit[0]


# violation prefix -> remediation texts
_RECOMMENDATIONS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("メッセージが長すぎます", (
        "メッセージを40文字以内に短縮してください",
        "詳細情報は別途モーダルやリンクで提供することを検討してください",
    )),
    ("推奨されない配置", ("Toastは画面上部中央または下部に配置してください",)),
    ("無効なタイプ", ("success/error/info/warningのいずれかを使用してください",)),
    ("PCでのBottomsheet", ("PCではModalコンポーネントの使用を検討してください",)),
    ("ヘッダーが見つかりません", ("Accordionには必ずヘッダーを含めてください",)),
    ("展開/折りたたみアイコン", ("chevron-downアイコンで展開状態を示してください",)),
    ("高さが最大値を超えています", ("Bottomsheetの高さは90vh以内に収めてください",)),
)


def generate_recommendations(violations: List[str]) -> List[str]:
    """Map violation texts to their fixed remediation advice, in order."""
    recommendations: List[str] = []
    for violation in violations:
        for marker, texts in _RECOMMENDATIONS:
            if marker in violation:
                recommendations.extend(texts)
    return recommendations
