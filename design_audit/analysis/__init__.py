from .document import Bounds, DesignDocument, DesignNode
from .guidelines import ComponentType, Guideline, get_guideline
from .inconsistency import InconsistencyFinding, detect_inconsistencies
from .locator import ComponentMatch, describe_component, extract_text_content, find_components
from .rules import GuidelineCheck, check_guideline, generate_recommendations

__all__ = [
    "Bounds",
    "ComponentMatch",
    "ComponentType",
    "DesignDocument",
    "DesignNode",
    "Guideline",
    "GuidelineCheck",
    "InconsistencyFinding",
    "check_guideline",
    "describe_component",
    "detect_inconsistencies",
    "extract_text_content",
    "find_components",
    "generate_recommendations",
    "get_guideline",
]
