"""PC/SP design analysis API routes.

Endpoints:
- POST /api/analyze  : Start a PC vs SP analysis run (202)
- GET  /api/runs  : List runs (newest first)
- GET  /api/runs/{run_id}  : Run detail with results + inconsistencies
- POST /api/components/search  : Locate components in one Figma file
- GET  /api/guidelines  : Supported component types
- GET  /api/guidelines/{component_type}  : Guideline table for a type
- POST /api/guidelines/{component_type}/check  : Score attributes against a guideline
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_session, get_session_ctx
from app.models.db import AnalysisResultModel, AnalysisRunModel, InconsistencyModel
from app.repositories.analysis_run import AnalysisRunRepository
from app.routes.analysis_schemas import (
    AnalysisResultItem,
    AnalyzeRequest,
    AnalyzeResponse,
    ComponentSearchRequest,
    ComponentSearchResponse,
    GuidelineCheckRequest,
    GuidelineCheckResponse,
    InconsistencyItem,
    RunDetail,
    RunListResponse,
    RunSummary,
)
from design_audit import settings
from design_audit.analysis.guidelines import ComponentType, get_guideline
from design_audit.analysis.rules import check_guideline, generate_recommendations
from design_audit.integrations.figma_client import FigmaClient, FigmaClientError
from design_audit.logging_config import get_api_logger
from design_audit.models import AnalysisRequest, RunOutcome
from design_audit.pipeline import RunnerFactory, build_runner

logger = get_api_logger()

router = APIRouter(prefix="/api", tags=["analysis"])

# Background run tasks, keyed by run_id; entries drop out when the task ends
RUN_TASKS: Dict[str, "asyncio.Task[RunOutcome]"] = {}


async def wait_for_run(run_id: str) -> Optional[RunOutcome]:
    """Await a background run if it is still tracked."""
    task = RUN_TASKS.get(run_id)
    if task is None:
        return None
    return await task


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _require_figma_token() -> None:
    from design_audit import config

    if not config.FIGMA_TOKEN:
        raise HTTPException(
            status_code=400,
            detail="FIGMA_TOKEN not configured. Set FIGMA_TOKEN environment variable.",
        )


def get_runner_factory() -> RunnerFactory:
    """Provide the factory used to build a runner per accepted request."""
    from design_audit import config

    _require_figma_token()
    if not config.ANTHROPIC_API_KEY:
        raise HTTPException(
            status_code=400,
            detail="ANTHROPIC_API_KEY not configured. Set ANTHROPIC_API_KEY environment variable.",
        )
    return build_runner


async def get_figma_client() -> AsyncGenerator[FigmaClient, None]:
    _require_figma_token()
    client = FigmaClient()
    try:
        yield client
    finally:
        await client.close()


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


def _run_to_summary(run: AnalysisRunModel) -> RunSummary:
    return RunSummary(
        run_id=run.id,
        status=run.status,
        trigger=run.trigger,
        pc_file_key=run.pc_file_key,
        sp_file_key=run.sp_file_key,
        pc_page_name=run.pc_page_name,
        sp_page_name=run.sp_page_name,
        components=run.components or [],
        total_pc=run.total_pc,
        total_sp=run.total_sp,
        total_inconsistencies=run.total_inconsistencies,
        average_pc_score=run.average_pc_score,
        average_sp_score=run.average_sp_score,
        error=run.error,
        created_at=_iso(run.created_at) or "",
        completed_at=_iso(run.completed_at),
    )


def _result_to_item(row: AnalysisResultModel) -> AnalysisResultItem:
    return AnalysisResultItem(
        id=row.id,
        component_type=row.component_type,
        component_name=row.component_name,
        node_id=row.node_id,
        device_type=row.device_type,
        image_url=row.image_url,
        frame_name=row.frame_name,
        page_name=row.page_name,
        detected_name=row.detected_name,
        detected_device_type=row.detected_device_type,
        placement=row.placement,
        extracted_content=row.extracted_content,
        action_type=row.action_type,
        compliance_score=row.compliance_score,
        violations=row.violations or [],
        recommendations=row.recommendations or [],
        flow_analysis=row.flow_analysis,
        summary=row.summary,
    )


def _inconsistency_to_item(row: InconsistencyModel) -> InconsistencyItem:
    return InconsistencyItem(
        id=row.id,
        component_type=row.component_type,
        kind=row.kind,
        severity=row.severity,
        description=row.description,
        recommendation=row.recommendation,
        pc_component=row.pc_component,
        sp_component=row.sp_component,
        pc_content=row.pc_content,
        sp_content=row.sp_content,
        action_type=row.action_type,
    )


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


@router.post("/analyze", response_model=AnalyzeResponse, status_code=202)
async def start_analysis(
    request: AnalyzeRequest,
    runner_factory: RunnerFactory = Depends(get_runner_factory),
):
    """Accept a PC/SP comparison and run it in the background.

    The run row is committed before the background task starts so the task
    and any status query always find it.
    """
    components = request.resolved_components()
    try:
        runner = runner_factory()
    except FigmaClientError as e:
        raise HTTPException(status_code=400, detail=str(e))

    async with get_session_ctx() as session:
        run = await AnalysisRunRepository(session).create(
            pc_file_key=request.pc_file_key,
            sp_file_key=request.sp_file_key,
            pc_page_name=request.pc_page_name,
            sp_page_name=request.sp_page_name,
            components=components,
        )
        run_id = run.id

    task = runner.start(run_id, AnalysisRequest(
        pc_file_key=request.pc_file_key,
        sp_file_key=request.sp_file_key,
        pc_page_name=request.pc_page_name,
        sp_page_name=request.sp_page_name,
        components=components,
    ))
    RUN_TASKS[run_id] = task
    task.add_done_callback(lambda _t: RUN_TASKS.pop(run_id, None))

    logger.info(
        f"Run {run_id}: accepted pc={request.pc_file_key} sp={request.sp_file_key} "
        f"components={components}"
    )
    return AnalyzeResponse(run_id=run_id)


@router.get("/runs", response_model=RunListResponse)
async def list_runs(
    status: Optional[str] = Query(None, description="Filter by status (comma-separated)"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.RUNS_PAGE_SIZE, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    """List analysis runs, newest first."""
    runs, total = await AnalysisRunRepository(session).list(
        status=status, page=page, page_size=page_size,
    )
    return RunListResponse(
        runs=[_run_to_summary(r) for r in runs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/runs/{run_id}", response_model=RunDetail)
async def get_run(
    run_id: str,
    session: AsyncSession = Depends(get_session),
):
    """Get a run with its analysis results and inconsistencies."""
    detail = await AnalysisRunRepository(session).get_detail(run_id)
    if detail is None:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")

    run, results, inconsistencies = detail
    summary = _run_to_summary(run)
    return RunDetail(
        **summary.model_dump(),
        results=[_result_to_item(r) for r in results],
        inconsistencies=[_inconsistency_to_item(i) for i in inconsistencies],
    )


# ---------------------------------------------------------------------------
# Component search
# ---------------------------------------------------------------------------


@router.post("/components/search", response_model=ComponentSearchResponse)
async def search_components(
    request: ComponentSearchRequest,
    figma: FigmaClient = Depends(get_figma_client),
):
    """Locate components of one type in a Figma file, with screenshot URLs."""
    try:
        components = await figma.search_components(
            request.file_key, request.component_type, request.page_name,
        )
    except FigmaClientError as e:
        logger.error(f"search_components: Figma API error: {e}")
        raise HTTPException(status_code=502, detail=f"Figma API error: {e}")

    return ComponentSearchResponse(
        file_key=request.file_key,
        component_type=request.component_type,
        page_name=request.page_name,
        total=len(components),
        components=components,
    )


# ---------------------------------------------------------------------------
# Guidelines
# ---------------------------------------------------------------------------


def _supported_type_or_404(component_type: str) -> ComponentType:
    ctype = ComponentType.parse(component_type)
    if ctype is ComponentType.UNSUPPORTED:
        raise HTTPException(
            status_code=404,
            detail=f"No guideline for component type '{component_type}'",
        )
    return ctype


@router.get("/guidelines")
async def list_guidelines() -> Dict[str, List[str]]:
    return {"component_types": [t.value for t in ComponentType.supported()]}


@router.get("/guidelines/{component_type}")
async def get_guideline_table(component_type: str):
    ctype = _supported_type_or_404(component_type)
    return get_guideline(ctype).to_dict()


@router.post("/guidelines/{component_type}/check", response_model=GuidelineCheckResponse)
async def check_component(component_type: str, request: GuidelineCheckRequest):
    """Score component attributes against the guideline of its type."""
    ctype = _supported_type_or_404(component_type)
    result = check_guideline(ctype, request.model_dump())
    return GuidelineCheckResponse(
        component_type=ctype.value,
        score=result.score,
        violations=result.violations,
        recommendations=generate_recommendations(result.violations),
    )
