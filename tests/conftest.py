"""Root conftest for API, repository and runner tests.

Provides:
- In-memory SQLite database (replaces production engine)
- FastAPI test client over ASGITransport
- Sample PC/SP Figma documents and fake Figma / vision collaborators
"""

from __future__ import annotations

from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

import app.database as db_module
from app.database import Base

# Import all ORM models so they register with Base.metadata
import app.models.db  # noqa: F401

from design_audit.analysis.document import DesignDocument
from design_audit.integrations.figma_client import FigmaClientError
from design_audit.integrations.vision_client import VisionClientError
from design_audit.models import VisionAnalysis


# ---------------------------------------------------------------------------
# In-memory async SQLite engine (StaticPool shares one connection)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine for one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Per-test database session with automatic rollback."""
    factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )
    async with factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def patched_db(test_engine: AsyncEngine) -> AsyncGenerator[async_sessionmaker, None]:
    """Point app.database at the test engine so get_session_ctx() uses it.

    Yields the test session factory for assertions.
    """
    original_engine = db_module.engine
    original_factory = db_module.async_session_factory

    test_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )
    db_module.engine = test_engine
    db_module.async_session_factory = test_factory
    try:
        yield test_factory
    finally:
        db_module.engine = original_engine
        db_module.async_session_factory = original_factory


@pytest_asyncio.fixture
async def client(patched_db) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI routes against the test DB."""
    from app.main import app

    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Sample Figma documents
# ---------------------------------------------------------------------------


def _node(node_id: str, name: str, node_type: str, children=None, **extra) -> Dict:
    node = {"id": node_id, "name": name, "type": node_type, "children": children or []}
    node.update(extra)
    return node


def _text(node_id: str, characters: str) -> Dict:
    return _node(node_id, characters, "TEXT", characters=characters)


@pytest.fixture
def pc_file_response() -> Dict:
    """GET /v1/files/:key response for the PC design."""
    return {
        "name": "Shop PC",
        "version": "101",
        "lastModified": "2026-09-01T00:00:00Z",
        "document": _node("0:0", "Document", "DOCUMENT", [
            _node("1:0", "PC", "CANVAS", [
                _node("10:1", "Confirm", "FRAME", [
                    _node("10:2", "toast_success", "INSTANCE", [_text("10:3", "保存しました")],
                          absoluteBoundingBox={"x": 500, "y": 24, "width": 400, "height": 56}),
                ]),
                _node("11:1", "Settings", "FRAME", [
                    _node("11:2", "Accordion/FAQ", "GROUP", [_text("11:3", "よくある質問")]),
                ]),
            ]),
            _node("2:0", "Archive", "CANVAS", [
                _node("20:1", "Old", "FRAME", [
                    _node("20:2", "toast_legacy", "INSTANCE"),
                ]),
            ]),
        ]),
    }


@pytest.fixture
def sp_file_response() -> Dict:
    """GET /v1/files/:key response for the SP design."""
    return {
        "name": "Shop SP",
        "version": "202",
        "document": _node("0:0", "Document", "DOCUMENT", [
            _node("1:0", "SP", "CANVAS", [
                _node("30:1", "Confirm", "FRAME", [
                    _node("30:2", "Toast_Success", "INSTANCE", [_text("30:3", "保存しました")]),
                ]),
                _node("31:1", "Menu", "FRAME", [
                    _node("31:2", "BottomSheet/Actions", "INSTANCE"),
                ]),
            ]),
        ]),
    }


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakeFigma:
    """In-memory stand-in for FigmaClient."""

    def __init__(
        self,
        files: Dict[str, Dict],
        fail_on: Optional[str] = None,
        unrendered: Optional[List[str]] = None,
    ):
        self.files = files
        self.fail_on = fail_on
        self.unrendered = set(unrendered or [])
        self.image_requests: List[List[str]] = []
        self.closed = False

    async def get_document(self, file_key: str, page_name: Optional[str] = None) -> DesignDocument:
        if file_key == self.fail_on or file_key not in self.files:
            raise FigmaClientError(f"Figma resource not found: /v1/files/{file_key}")
        return DesignDocument.from_file_response(file_key, self.files[file_key])

    async def get_image_urls(self, file_key, node_ids, fmt=None, scale=None, version=None):
        self.image_requests.append(list(node_ids))
        return {
            nid: (None if nid in self.unrendered else f"https://img.test/{file_key}/{nid}.png")
            for nid in node_ids
        }

    async def close(self) -> None:
        self.closed = True


class FakeVision:
    """In-memory stand-in for VisionClient; scores by image URL."""

    def __init__(
        self,
        scores: Optional[Dict[str, int]] = None,
        default_score: int = 70,
        fail_after: Optional[int] = None,
    ):
        self.scores = scores or {}
        self.default_score = default_score
        self.fail_after = fail_after
        self.calls: List[tuple] = []
        self.closed = False

    async def analyze(self, image_url: str, component_type: str, guideline_text: str) -> VisionAnalysis:
        if self.fail_after is not None and len(self.calls) >= self.fail_after:
            raise VisionClientError("Vision API error 500: upstream failure")
        self.calls.append((image_url, component_type))
        return VisionAnalysis(
            component_name=f"{component_type} component",
            device_type="pc" if "/pc-file/" in image_url else "sp",
            placement="top",
            extracted_content="保存しました",
            action_type="notification",
            compliance_score=self.scores.get(image_url, self.default_score),
            summary="ok",
        )

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def figma_files(pc_file_response, sp_file_response) -> Dict[str, Dict]:
    return {"pc-file": pc_file_response, "sp-file": sp_file_response}


@pytest.fixture
def fake_figma(figma_files) -> FakeFigma:
    return FakeFigma(figma_files)


@pytest.fixture
def fake_vision() -> FakeVision:
    return FakeVision()


@pytest.fixture
def make_figma(figma_files):
    """Build a FakeFigma over the sample files with custom failure options."""
    return lambda **kwargs: FakeFigma(figma_files, **kwargs)


@pytest.fixture
def make_vision():
    return lambda **kwargs: FakeVision(**kwargs)
