"""Run orchestrator: drives one PC vs SP analysis run to a terminal state.

Flow for a run:
    1. Fetch the PC and SP documents
    2. For each requested component type, in order:
       locate on both sides -> persist existence inconsistencies ->
       render + analyse every PC match -> render + analyse every SP match
    3. Store aggregate stats and mark the run completed

Every result row is committed as soon as it is produced, so a run that fails
halfway keeps what it already wrote. Any exception marks the run failed;
the task never leaves a run in ``running``.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, List, Optional

from design_audit.analysis.document import DesignDocument
from design_audit.analysis.guidelines import ComponentType, get_guideline
from design_audit.analysis.inconsistency import InconsistencyFinding, detect_inconsistencies
from design_audit.analysis.locator import ComponentMatch, find_components
from design_audit.integrations.figma_client import FigmaClient, FigmaClientError
from design_audit.integrations.vision_client import VisionClient
from design_audit.logging_config import get_runner_logger
from design_audit.models import AnalysisRequest, RunOutcome, RunStats, VisionAnalysis

logger = get_runner_logger()

DEVICE_PC = "pc"
DEVICE_SP = "sp"


# ---------------------------------------------------------------------------
# Persistence helpers (each opens its own short-lived session)
# ---------------------------------------------------------------------------


async def _save_inconsistencies(run_id: str, findings: List[InconsistencyFinding]) -> None:
    if not findings:
        return
    from app.database import get_session_ctx
    from app.repositories.analysis_run import AnalysisRunRepository

    async with get_session_ctx() as session:
        repo = AnalysisRunRepository(session)
        for finding in findings:
            await repo.add_inconsistency(
                run_id,
                component_type=finding.component_type,
                kind=finding.kind,
                severity=finding.severity,
                description=finding.description,
                recommendation=finding.recommendation,
                pc_component=finding.pc_component,
                sp_component=finding.sp_component,
            )


async def _save_result(
    run_id: str,
    component_type: str,
    device: str,
    match: ComponentMatch,
    image_url: str,
    analysis: VisionAnalysis,
) -> None:
    from app.database import get_session_ctx
    from app.repositories.analysis_run import AnalysisRunRepository

    async with get_session_ctx() as session:
        await AnalysisRunRepository(session).add_result(
            run_id,
            component_type=component_type,
            component_name=match.name,
            node_id=match.node_id,
            device_type=device,
            image_url=image_url,
            frame_name=match.frame_name,
            page_name=match.page_name,
            detected_name=analysis.component_name,
            detected_device_type=analysis.device_type,
            placement=analysis.placement,
            extracted_content=analysis.extracted_content,
            action_type=analysis.action_type,
            compliance_score=analysis.compliance_score,
            violations=analysis.violations,
            recommendations=analysis.recommendations,
            flow_analysis=analysis.flow_analysis,
            summary=analysis.summary,
        )


async def _finish_run(
    run_id: str,
    status: str,
    error: Optional[str] = None,
    stats: Optional[RunStats] = None,
) -> None:
    from app.database import get_session_ctx
    from app.repositories.analysis_run import AnalysisRunRepository

    async with get_session_ctx() as session:
        await AnalysisRunRepository(session).update_status(
            run_id,
            status,
            error=error,
            stats=stats.to_dict() if stats else None,
            completed_at=datetime.now(timezone.utc),
        )


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class AnalysisRunner:
    """Executes analysis runs with the given Figma and vision collaborators."""

    def __init__(self, figma: FigmaClient, vision: VisionClient):
        self.figma = figma
        self.vision = vision

    async def close(self) -> None:
        await self.figma.close()
        await self.vision.close()

    def start(self, run_id: str, request: AnalysisRequest) -> "asyncio.Task[RunOutcome]":
        """Launch the run in the background and return its task.

        The run row must already be committed. Clients are closed when the
        task finishes.
        """
        return asyncio.create_task(self._run_and_close(run_id, request), name=f"analysis-{run_id}")

    async def _run_and_close(self, run_id: str, request: AnalysisRequest) -> RunOutcome:
        try:
            return await self.run(run_id, request)
        finally:
            await self.close()

    async def run(self, run_id: str, request: AnalysisRequest) -> RunOutcome:
        """Execute one run to completion or failure. Never raises for run errors."""
        logger.info(
            f"Run {run_id}: starting pc={request.pc_file_key} sp={request.sp_file_key} "
            f"components={request.components}"
        )
        try:
            stats = await self._execute(run_id, request)
            await _finish_run(run_id, "completed", stats=stats)
            logger.info(
                f"Run {run_id}: completed pc={stats.total_pc} sp={stats.total_sp} "
                f"inconsistencies={stats.total_inconsistencies}"
            )
            return RunOutcome(run_id=run_id, status="completed", stats=stats)
        except asyncio.CancelledError:
            logger.warning(f"Run {run_id}: cancelled")
            await _finish_run(run_id, "failed", error="Run cancelled")
            raise
        except Exception as exc:
            error = f"{type(exc).__name__}: {exc}"
            logger.error(f"Run {run_id}: failed: {error}", exc_info=True)
            try:
                await _finish_run(run_id, "failed", error=error)
            except Exception as db_err:
                logger.error(f"Run {run_id}: could not record failure: {db_err}", exc_info=True)
            return RunOutcome(run_id=run_id, status="failed", error=error)

    async def _execute(self, run_id: str, request: AnalysisRequest) -> RunStats:
        pc_doc = await self.figma.get_document(request.pc_file_key, request.pc_page_name)
        sp_doc = await self.figma.get_document(request.sp_file_key, request.sp_page_name)

        pc_scores: List[int] = []
        sp_scores: List[int] = []
        total_inconsistencies = 0

        for component_key in request.components:
            ctype = ComponentType.parse(component_key)
            if ctype is ComponentType.UNSUPPORTED:
                logger.warning(f"Run {run_id}: unsupported component type {component_key!r}")
            component_type = ctype.value if ctype is not ComponentType.UNSUPPORTED else component_key
            guideline_text = get_guideline(ctype).to_prompt_text()

            pc_matches = find_components(pc_doc, ctype, request.pc_page_name)
            sp_matches = find_components(sp_doc, ctype, request.sp_page_name)
            logger.info(
                f"Run {run_id}: {component_type} pc_matches={len(pc_matches)} "
                f"sp_matches={len(sp_matches)}"
            )

            findings = detect_inconsistencies(pc_matches, sp_matches, ctype)
            await _save_inconsistencies(run_id, findings)
            total_inconsistencies += len(findings)

            pc_scores.extend(await self._analyze_side(
                run_id, component_type, DEVICE_PC, pc_doc, pc_matches, guideline_text,
            ))
            sp_scores.extend(await self._analyze_side(
                run_id, component_type, DEVICE_SP, sp_doc, sp_matches, guideline_text,
            ))

        return RunStats.from_scores(pc_scores, sp_scores, total_inconsistencies)

    async def _analyze_side(
        self,
        run_id: str,
        component_type: str,
        device: str,
        document: DesignDocument,
        matches: List[ComponentMatch],
        guideline_text: str,
    ) -> List[int]:
        """Render and analyse every match of one device; return their scores."""
        if not matches:
            return []

        images = await self.figma.get_image_urls(
            document.file_key, [m.node_id for m in matches], version=document.version,
        )

        scores: List[int] = []
        for match in matches:
            image_url = images.get(match.node_id)
            if not image_url:
                raise FigmaClientError(
                    f"Figma could not render node {match.node_id} ({match.name}) "
                    f"in file {document.file_key}"
                )
            analysis = await self.vision.analyze(image_url, component_type, guideline_text)
            await _save_result(run_id, component_type, device, match, image_url, analysis)
            scores.append(analysis.compliance_score)
        return scores


def build_runner(
    figma_token: Optional[str] = None,
    vision_api_key: Optional[str] = None,
) -> AnalysisRunner:
    """Default factory: real clients configured from design_audit.config."""
    return AnalysisRunner(
        figma=FigmaClient(token=figma_token),
        vision=VisionClient(api_key=vision_api_key),
    )


RunnerFactory = Callable[[], AnalysisRunner]
