"""Repository layer for analysis run persistence.

Provides async CRUD operations for AnalysisRunModel and its child rows
(AnalysisResultModel, InconsistencyModel). Child rows may only be written
while their run is still ``running``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import AnalysisResultModel, AnalysisRunModel, InconsistencyModel

RUN_RUNNING = "running"
RUN_COMPLETED = "completed"
RUN_FAILED = "failed"
TERMINAL_STATUSES = (RUN_COMPLETED, RUN_FAILED)

_STAT_FIELDS = (
    "total_pc",
    "total_sp",
    "total_inconsistencies",
    "average_pc_score",
    "average_sp_score",
)


class RunStateError(Exception):
    """Raised on writes against a missing or already-finished run."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisRunRepository:
    """Data access layer for analysis runs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        pc_file_key: str,
        sp_file_key: str,
        components: List[str],
        pc_page_name: Optional[str] = None,
        sp_page_name: Optional[str] = None,
        trigger: str = "manual",
        run_id: Optional[str] = None,
    ) -> AnalysisRunModel:
        """Create a new run in ``running`` state.

        Args:
            pc_file_key: Figma file key of the PC design
            sp_file_key: Figma file key of the SP design
            components: Component types to analyse, in order
            pc_page_name: Optional page filter for the PC file
            sp_page_name: Optional page filter for the SP file
            trigger: What started the run (manual, scheduled, ...)
            run_id: Explicit identifier; generated when omitted

        Returns:
            Created AnalysisRunModel
        """
        run = AnalysisRunModel(
            status=RUN_RUNNING,
            trigger=trigger,
            pc_file_key=pc_file_key,
            sp_file_key=sp_file_key,
            pc_page_name=pc_page_name,
            sp_page_name=sp_page_name,
            components=list(components),
        )
        if run_id:
            run.id = run_id
        self.session.add(run)
        await self.session.flush()
        return run

    async def get(self, run_id: str) -> Optional[AnalysisRunModel]:
        """Get a run by ID (without child rows)."""
        result = await self.session.execute(
            select(AnalysisRunModel).where(AnalysisRunModel.id == run_id)
        )
        return result.scalar_one_or_none()

    async def get_detail(
        self,
        run_id: str,
    ) -> Optional[Tuple[AnalysisRunModel, List[AnalysisResultModel], List[InconsistencyModel]]]:
        """Get a run with its ordered results and inconsistencies.

        Results are ordered by component type, device type and component name;
        inconsistencies by severity (high first) and then component type.

        Returns:
            Tuple of (run, results, inconsistencies) or None if not found
        """
        run = await self.get(run_id)
        if not run:
            return None

        results = await self.session.execute(
            select(AnalysisResultModel)
            .where(AnalysisResultModel.run_id == run_id)
            .order_by(
                AnalysisResultModel.component_type,
                AnalysisResultModel.device_type,
                AnalysisResultModel.component_name,
            )
        )

        severity_rank = case(
            {"high": 0, "medium": 1, "low": 2},
            value=InconsistencyModel.severity,
            else_=3,
        )
        inconsistencies = await self.session.execute(
            select(InconsistencyModel)
            .where(InconsistencyModel.run_id == run_id)
            .order_by(severity_rank, InconsistencyModel.component_type, InconsistencyModel.created_at)
        )

        return run, list(results.scalars().all()), list(inconsistencies.scalars().all())

    async def list(
        self,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[AnalysisRunModel], int]:
        """List runs newest first with optional filtering and pagination.

        Args:
            status: Filter by run status (comma-separated for several)
            page: Page number (1-indexed)
            page_size: Items per page

        Returns:
            Tuple of (runs, total_count)
        """
        query = select(AnalysisRunModel)
        count_query = select(func.count()).select_from(AnalysisRunModel)

        if status:
            statuses = [s.strip() for s in status.split(",") if s.strip()]
            if len(statuses) == 1:
                query = query.where(AnalysisRunModel.status == statuses[0])
                count_query = count_query.where(AnalysisRunModel.status == statuses[0])
            else:
                query = query.where(AnalysisRunModel.status.in_(statuses))
                count_query = count_query.where(AnalysisRunModel.status.in_(statuses))

        query = query.order_by(AnalysisRunModel.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)

        result = await self.session.execute(query)
        runs = list(result.scalars().all())

        count_result = await self.session.execute(count_query)
        total = count_result.scalar() or 0

        return runs, total

    async def update_status(
        self,
        run_id: str,
        status: str,
        error: Optional[str] = None,
        stats: Optional[Dict[str, Any]] = None,
        completed_at: Optional[datetime] = None,
    ) -> Optional[AnalysisRunModel]:
        """Move a run from ``running`` to a terminal status.

        Args:
            run_id: Run identifier
            status: ``completed`` or ``failed``
            error: Error message if failed
            stats: Aggregate counters (total_pc, total_sp, ...) to store
            completed_at: Completion timestamp (defaults to now)

        Returns:
            Updated AnalysisRunModel or None if not found

        Raises:
            RunStateError: If the transition is not running -> completed/failed
        """
        run = await self.get(run_id)
        if not run:
            return None

        if status not in TERMINAL_STATUSES:
            raise RunStateError(f"Invalid target status for run {run_id}: {status}")
        if run.status != RUN_RUNNING:
            raise RunStateError(
                f"Run {run_id} is already {run.status}; cannot move to {status}"
            )

        run.status = status
        if error is not None:
            run.error = error
        for key, value in (stats or {}).items():
            if key in _STAT_FIELDS:
                setattr(run, key, value)
        run.completed_at = completed_at or _utcnow()

        await self.session.flush()
        return run

    async def _require_running(self, run_id: str) -> AnalysisRunModel:
        run = await self.get(run_id)
        if not run:
            raise RunStateError(f"Run not found: {run_id}")
        if run.status != RUN_RUNNING:
            raise RunStateError(f"Run {run_id} is {run.status}; no further writes allowed")
        return run

    async def add_result(self, run_id: str, **fields: Any) -> AnalysisResultModel:
        """Append a component analysis result to a running run.

        Args:
            run_id: Owning run
            **fields: AnalysisResultModel columns (component_type, component_name,
                device_type, image_url, compliance_score, ...)

        Returns:
            Created AnalysisResultModel
        """
        await self._require_running(run_id)
        result = AnalysisResultModel(run_id=run_id, **fields)
        self.session.add(result)
        await self.session.flush()
        return result

    async def add_inconsistency(self, run_id: str, **fields: Any) -> InconsistencyModel:
        """Append a detected PC/SP inconsistency to a running run."""
        await self._require_running(run_id)
        row = InconsistencyModel(run_id=run_id, **fields)
        self.session.add(row)
        await self.session.flush()
        return row
