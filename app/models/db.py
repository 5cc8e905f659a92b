"""SQLAlchemy ORM models for the design audit service.

Tables:
- analysis_runs: One record per PC/SP comparison run with aggregate stats
- analysis_results: Vision analysis of a single component on one device
- inconsistencies: PC/SP mismatches detected during a run
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_uuid() -> str:
    return str(uuid.uuid4())


def gen_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


# ─── Analysis Run ────────────────────────────────────────────────────


class AnalysisRunModel(Base):
    """A single PC vs SP comparison run.

    Created as ``running`` when the request is accepted and moved exactly once
    to ``completed`` (with aggregate stats) or ``failed`` (with an error).
    """

    __tablename__ = "analysis_runs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=gen_run_id)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="running",
        comment="running | completed | failed",
    )
    trigger: Mapped[str] = mapped_column(
        String(32), nullable=False, default="manual",
        comment="manual | scheduled | webhook",
    )

    # Inputs
    pc_file_key: Mapped[str] = mapped_column(String(128), nullable=False)
    sp_file_key: Mapped[str] = mapped_column(String(128), nullable=False)
    pc_page_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sp_page_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    components: Mapped[Optional[List[str]]] = mapped_column(
        JSON, nullable=True, comment="Requested component types, in processing order",
    )

    # Aggregates (set on completion)
    total_pc: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_inconsistencies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    average_pc_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    average_sp_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    # Relationships
    results: Mapped[List["AnalysisResultModel"]] = relationship(
        back_populates="run", cascade="all, delete-orphan",
    )
    inconsistencies: Mapped[List["InconsistencyModel"]] = relationship(
        back_populates="run", cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_analysis_runs_status", "status"),
        Index("ix_analysis_runs_created_at", "created_at"),
    )


# ─── Analysis Result ─────────────────────────────────────────────────


class AnalysisResultModel(Base):
    """Vision analysis of one matched component on one device variant."""

    __tablename__ = "analysis_results"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    run_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("analysis_runs.id", ondelete="CASCADE"), nullable=False,
    )
    component_type: Mapped[str] = mapped_column(String(32), nullable=False)
    component_name: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="Figma node name",
    )
    node_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    device_type: Mapped[str] = mapped_column(String(8), nullable=False, comment="pc | sp")
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    frame_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    page_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Vision model output
    detected_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, comment="componentName as read by the vision model",
    )
    detected_device_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    placement: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    extracted_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    compliance_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    violations: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    recommendations: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    flow_analysis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    run: Mapped["AnalysisRunModel"] = relationship(back_populates="results")

    __table_args__ = (
        Index("ix_analysis_results_run_id", "run_id"),
        Index("ix_analysis_results_component_type", "component_type"),
    )


# ─── Inconsistency ───────────────────────────────────────────────────


class InconsistencyModel(Base):
    """A PC/SP mismatch for one component type within a run."""

    __tablename__ = "inconsistencies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_gen_uuid)
    run_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("analysis_runs.id", ondelete="CASCADE"), nullable=False,
    )
    component_type: Mapped[str] = mapped_column(String(32), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(32), nullable=False, default="existence", comment="existence",
    )
    severity: Mapped[str] = mapped_column(
        String(16), nullable=False, default="high", comment="high | medium | low",
    )
    description: Mapped[str] = mapped_column(Text, nullable=False)
    recommendation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pc_component: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sp_component: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    pc_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sp_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    details: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON, nullable=True, comment="Extra structured data for future mismatch kinds",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    run: Mapped["AnalysisRunModel"] = relationship(back_populates="inconsistencies")

    __table_args__ = (
        Index("ix_inconsistencies_run_id", "run_id"),
        Index("ix_inconsistencies_severity", "severity"),
    )
