"""Vision model client: scores one component screenshot against a guideline.

Talks to the Anthropic Messages API directly over httpx. One request per
component, no retries; transport problems raise VisionClientError while an
unreadable model reply degrades to VisionAnalysis.parse_error().
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from design_audit import settings
from design_audit.models import VisionAnalysis

logger = logging.getLogger("design_audit.integrations.vision")

COMPLIANCE_MIN = 0
COMPLIANCE_MAX = 100

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?")


class VisionClientError(Exception):
    """Raised when the vision model API call fails."""


def build_analysis_prompt(component_type: str, guideline_text: str) -> str:
    return f"""あなたはUIデザインの専門家です。以下のガイドラインに基づいて、画像内の{component_type}コンポーネントを分析してください。

【ガイドライン】
{guideline_text}

【分析項目】
1. コンポーネント名
2. デバイスタイプ（PC/SP）
3. 配置（上部/中央/下部）
4. 抽出されたコンテンツ（テキスト）
5. アクションタイプ
6. コンプライアンススコア（0-100）
7. 違反項目（あれば）
8. 改善提案（あれば）
9. 画面フロー分析（フレーム名が分かれば）
10. サマリー

以下のJSON形式で回答してください（JSON以外の説明は不要）：

{{
  "componentName": "コンポーネント名",
  "deviceType": "pc" または "sp",
  "placement": "top" | "center" | "bottom",
  "extractedContent": "抽出されたテキスト",
  "actionType": "アクションタイプ",
  "complianceScore": 0-100の数値,
  "violations": ["違反項目1", "違反項目2"],
  "recommendations": ["改善提案1", "改善提案2"],
  "flowAnalysis": "画面フローの分析",
  "summary": "サマリー"
}}"""


def _load_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object from a model reply, tolerating fences and preamble.

    Tries in order: fence-stripped text -> outermost braces.
    """
    text = _FENCE_RE.sub("", raw).replace("```", "").strip()
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
        brace_start = text.find("{")
        brace_end = text.rfind("}")
        if brace_start >= 0 and brace_end > brace_start:
            try:
                parsed = json.loads(text[brace_start:brace_end + 1])
            except json.JSONDecodeError:
                pass
    return parsed if isinstance(parsed, dict) else None


def _coerce_score(value: Any) -> int:
    try:
        score = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return COMPLIANCE_MIN
    return max(COMPLIANCE_MIN, min(COMPLIANCE_MAX, score))


def _coerce_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v not in (None, "")]
    return [str(value)]


def _text(value: Any, default: str) -> str:
    if value in (None, ""):
        return default
    return value if isinstance(value, str) else str(value)


def parse_analysis_response(text: str) -> VisionAnalysis:
    """Turn the model's reply into a VisionAnalysis. Never raises."""
    parsed = _load_json_object(text or "")
    if parsed is None:
        logger.error(f"parse_analysis_response: JSON parse error, raw[:500]: {(text or '')[:500]}")
        return VisionAnalysis.parse_error(text or "")

    return VisionAnalysis(
        component_name=_text(parsed.get("componentName"), "Unknown"),
        device_type=_text(parsed.get("deviceType"), "unknown"),
        placement=_text(parsed.get("placement"), "center"),
        extracted_content=_text(parsed.get("extractedContent"), ""),
        action_type=_text(parsed.get("actionType"), "unknown"),
        compliance_score=_coerce_score(parsed.get("complianceScore")),
        violations=_coerce_list(parsed.get("violations")),
        recommendations=_coerce_list(parsed.get("recommendations")),
        flow_analysis=_text(parsed.get("flowAnalysis"), ""),
        summary=_text(parsed.get("summary"), ""),
    )


class VisionClient:
    """Async client for the vision-capable model.

    Args:
        api_key: Anthropic API key. Falls back to the ANTHROPIC_API_KEY config value.
        model: Model name (default: settings.VISION_MODEL).
        max_tokens: Reply token budget (default: settings.VISION_MAX_TOKENS).
        timeout: HTTP request timeout in seconds.
        api_url: Messages endpoint URL.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
        api_url: Optional[str] = None,
    ):
        from design_audit import config

        self._api_key = api_key if api_key is not None else config.ANTHROPIC_API_KEY
        if not self._api_key:
            raise VisionClientError(
                "Vision API key not configured. Set ANTHROPIC_API_KEY environment variable "
                "or pass api_key= to VisionClient()."
            )
        self._api_url = api_url or config.ANTHROPIC_API_URL
        self._api_version = config.ANTHROPIC_VERSION
        self.model = model or settings.VISION_MODEL
        self.max_tokens = max_tokens or settings.VISION_MAX_TOKENS
        self._timeout = timeout if timeout is not None else settings.VISION_HTTP_TIMEOUT
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={
                    "x-api-key": self._api_key,
                    "anthropic-version": self._api_version,
                    "content-type": "application/json",
                },
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _build_payload(self, image_url: str, prompt: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image", "source": {"type": "url", "url": image_url}},
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.post(self._api_url, json=payload)
        except httpx.TimeoutException as e:
            raise VisionClientError("Vision API timeout") from e
        except httpx.TransportError as e:
            raise VisionClientError(f"Vision API connection error: {e}") from e

        if resp.status_code == 401:
            raise VisionClientError("Vision API returned 401 Unauthorized. Check ANTHROPIC_API_KEY.")
        if resp.status_code == 429:
            raise VisionClientError("Vision API rate limit exceeded.")
        if not 200 <= resp.status_code < 300:
            raise VisionClientError(f"Vision API error {resp.status_code}: {resp.text[:200]}")

        try:
            return resp.json()
        except ValueError as e:
            raise VisionClientError("Vision API returned invalid JSON envelope") from e

    @staticmethod
    def _reply_text(envelope: Dict[str, Any]) -> str:
        blocks = envelope.get("content")
        if not isinstance(blocks, list) or not blocks:
            raise VisionClientError("Vision API response has no content blocks")
        texts = [
            b["text"] for b in blocks
            if isinstance(b, dict) and b.get("type", "text") == "text"
            and isinstance(b.get("text"), str)
        ]
        if not texts:
            raise VisionClientError("Vision API response has no text block")
        return "".join(texts)

    async def analyze(
        self,
        image_url: str,
        component_type: str,
        guideline_text: str,
    ) -> VisionAnalysis:
        """Score one rendered component against its guideline."""
        prompt = build_analysis_prompt(component_type, guideline_text)
        envelope = await self._post(self._build_payload(image_url, prompt))
        analysis = parse_analysis_response(self._reply_text(envelope))
        logger.info(
            f"analyze: type={component_type}, name={analysis.component_name!r}, "
            f"score={analysis.compliance_score}"
        )
        return analysis
