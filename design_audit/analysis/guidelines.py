"""Static component guideline table.

Each supported component type carries its naming patterns (used by the
locator) and the written style rules (rendered into the vision prompt and
consulted by the rule checker).
Product copy is Japanese.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


class ComponentType(str, Enum):
    TOAST = "toast"
    ACCORDION = "accordion"
    BOTTOMSHEET = "bottomsheet"
    UNSUPPORTED = "unsupported"

    @classmethod
    def parse(cls, value: "str | ComponentType") -> "ComponentType":
        """Map a request key to a member; unknown keys become UNSUPPORTED."""
        if isinstance(value, cls):
            return value
        try:
            member = cls(str(value).strip().lower())
        except ValueError:
            return cls.UNSUPPORTED
        return member

    @classmethod
    def supported(cls) -> List["ComponentType"]:
        return [m for m in cls if m is not cls.UNSUPPORTED]


@dataclass(frozen=True)
class Guideline:
    component_type: ComponentType
    name_patterns: Tuple[re.Pattern[str], ...] = ()
    rules: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.rules

    def matches_name(self, name: str) -> bool:
        return any(p.search(name) for p in self.name_patterns)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_type": self.component_type.value,
            "name_patterns": [p.pattern for p in self.name_patterns],
            "rules": _plain(self.rules),
        }

    def to_prompt_text(self) -> str:
        """Render the rule sections for inclusion in a model prompt."""
        if self.is_empty:
            return "（ガイドラインなし）"
        return json.dumps(_plain(self.rules), ensure_ascii=False, indent=2)

    # -- Typed accessors used by the rule checker ---------------------

    @property
    def message_max_length(self) -> Optional[int]:
        return self.rules.get("message", {}).get("maxLength")

    @property
    def variant_types(self) -> List[str]:
        return list(self.rules.get("types", {}).keys())

    @property
    def allowed_placements(self) -> List[str]:
        placement = self.rules.get("placement", {})
        allowed = [placement["default"]] if placement.get("default") else []
        allowed.extend(placement.get("alternatives", []))
        return allowed

    @property
    def max_height(self) -> Optional[str]:
        return self.rules.get("dimensions", {}).get("maxHeight")


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _patterns(*sources: str) -> Tuple[re.Pattern[str], ...]:
    return tuple(re.compile(s, re.IGNORECASE) for s in sources)


# ─── Toast ───────────────────────────────────────────────────────────

TOAST_RULES: Dict[str, Any] = {
    "usage": {
        "when": [
            "ユーザーのアクションに対する結果を伝える",
            "システムの状態変化を通知する",
            "一時的な情報を表示する",
        ],
        "whenNot": [
            "重要な警告やエラー（モーダルを使用）",
            "長い文章の表示",
            "ユーザーの操作を必要とする内容",
        ],
    },
    "placement": {
        "default": "画面上部中央",
        "alternatives": ["画面下部"],
        "prohibited": ["画面の端", "操作の邪魔になる位置"],
    },
    "message": {
        "maxLength": 40,
        "tone": "簡潔で明確",
        "format": [
            "「〜しました」の完了形",
            "主語は省略可",
            "専門用語は避ける",
        ],
        "examples": {
            "good": ["保存しました", "削除しました", "コピーしました"],
            "bad": [
                "データベースへの保存処理が正常に完了しました",
                "削除",
                "OK",
            ],
        },
    },
    "types": {
        "success": {"color": "green", "icon": "check-circle", "usage": "操作が成功した時"},
        "error": {"color": "red", "icon": "x-circle", "usage": "操作が失敗した時"},
        "info": {"color": "blue", "icon": "info-circle", "usage": "情報を伝える時"},
        "warning": {"color": "yellow", "icon": "alert-triangle", "usage": "注意を促す時"},
    },
    "duration": {"default": 3000, "min": 2000, "max": 5000, "autoClose": True},
    "actions": {
        "maxActions": 1,
        "types": ["閉じる", "元に戻す", "詳細を見る"],
        "placement": "メッセージの右側",
    },
    "deviceDifferences": {
        "pc": {"width": "固定幅（400px推奨）", "position": "画面上部中央"},
        "sp": {"width": "画面幅いっぱい", "position": "画面上部"},
    },
}


# ─── Accordion ───────────────────────────────────────────────────────

ACCORDION_RULES: Dict[str, Any] = {
    "usage": {
        "when": ["長いコンテンツを整理する", "FAQ形式の情報表示", "段階的な情報開示"],
        "whenNot": ["重要な情報の隠蔽", "2つ以下の項目", "ナビゲーション用途"],
    },
    "structure": {
        "header": {
            "height": {"pc": "48px", "sp": "56px"},
            "icon": "chevron-down",
            "alignment": "left",
        },
        "content": {
            "padding": {"pc": "16px", "sp": "12px"},
            "animation": "smooth expand/collapse",
        },
    },
    "behavior": {
        "defaultState": "collapsed",
        "multiOpen": True,
        "clickTarget": "ヘッダー全体",
    },
    "deviceDifferences": {
        "pc": {"hoverState": True},
        "sp": {"hoverState": False, "tapHighlight": True},
    },
}


# ─── Bottomsheet ─────────────────────────────────────────────────────

BOTTOMSHEET_RULES: Dict[str, Any] = {
    "usage": {
        "when": ["モバイルでの追加情報表示", "アクションメニュー", "フォーム入力"],
        "whenNot": ["PCでの使用（モーダル推奨）", "全画面表示が必要な内容", "複雑な操作フロー"],
    },
    "dimensions": {
        "maxHeight": "90vh",
        "minHeight": "200px",
        "borderRadius": "16px 16px 0 0",
    },
    "behavior": {
        "openAnimation": "slide-up",
        "closeOn": ["背景タップ", "スワイプダウン", "閉じるボタン"],
        "backdrop": "semi-transparent (rgba(0,0,0,0.5))",
    },
    "deviceDifferences": {
        "pc": {"notRecommended": True, "alternative": "Modal"},
        "sp": {"recommended": True},
    },
}


GUIDELINES: Mapping[ComponentType, Guideline] = MappingProxyType({
    ComponentType.TOAST: Guideline(
        ComponentType.TOAST, _patterns(r"toast", r"トースト"), TOAST_RULES,
    ),
    ComponentType.ACCORDION: Guideline(
        ComponentType.ACCORDION, _patterns(r"accordion", r"アコーディオン"), ACCORDION_RULES,
    ),
    ComponentType.BOTTOMSHEET: Guideline(
        ComponentType.BOTTOMSHEET, _patterns(r"bottom.*sheet", r"ボトムシート"), BOTTOMSHEET_RULES,
    ),
    ComponentType.UNSUPPORTED: Guideline(ComponentType.UNSUPPORTED),
})


def get_guideline(component_type: "str | ComponentType") -> Guideline:
    """Return the guideline for a component type (empty for unsupported keys)."""
    return GUIDELINES[ComponentType.parse(component_type)]
