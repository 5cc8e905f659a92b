"""Tests for analysis API routes (app/routes/analysis.py).

Covers:
- POST /api/analyze (validation, configuration checks, 202 acknowledgment)
- End-to-end run through fake Figma / vision collaborators
- GET /api/runs and GET /api/runs/{run_id}
- POST /api/components/search
- GET/POST /api/guidelines/...
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from httpx import AsyncClient

from app.routes.analysis import get_figma_client, get_runner_factory, wait_for_run
from design_audit.integrations.figma_client import FigmaClientError
from design_audit.pipeline import AnalysisRunner


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ANALYZE_PAYLOAD = {
    "pc_file_key": "pc-file",
    "sp_file_key": "sp-file",
    "pc_page_name": "PC",
    "sp_page_name": "SP",
}


def _use_runner(figma, vision):
    """Route every accepted run through the given collaborators."""
    from app.main import app

    app.dependency_overrides[get_runner_factory] = lambda: (lambda: AnalysisRunner(figma, vision))


async def _start_and_wait(client: AsyncClient, payload: dict) -> dict:
    resp = await client.post("/api/analyze", json=payload)
    assert resp.status_code == 202, resp.text
    run_id = resp.json()["run_id"]
    await wait_for_run(run_id)
    detail = await client.get(f"/api/runs/{run_id}")
    assert detail.status_code == 200, detail.text
    return detail.json()


# ---------------------------------------------------------------------------
# POST /api/analyze
# ---------------------------------------------------------------------------


class TestStartAnalysis:

    @pytest.mark.asyncio
    async def test_requires_figma_token(self, client: AsyncClient):
        with patch("design_audit.config.FIGMA_TOKEN", ""):
            resp = await client.post("/api/analyze", json=ANALYZE_PAYLOAD)
        assert resp.status_code == 400
        assert "FIGMA_TOKEN" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_requires_vision_api_key(self, client: AsyncClient):
        with patch("design_audit.config.FIGMA_TOKEN", "fake-token"), \
                patch("design_audit.config.ANTHROPIC_API_KEY", ""):
            resp = await client.post("/api/analyze", json=ANALYZE_PAYLOAD)
        assert resp.status_code == 400
        assert "ANTHROPIC_API_KEY" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_missing_file_key_rejected(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        resp = await client.post("/api/analyze", json={"pc_file_key": "pc-file"})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_blank_file_key_rejected(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        resp = await client.post("/api/analyze", json={"pc_file_key": "  ", "sp_file_key": "sp-file"})
        assert resp.status_code == 422
        assert "File keys are required" in resp.text

        runs = await client.get("/api/runs")
        assert runs.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_accepts_camel_case_body(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        resp = await client.post("/api/analyze", json={
            "pcFileKey": "pc-file",
            "spFileKey": "sp-file",
            "pcPageName": "PC",
            "spPageName": "SP",
            "components": ["toast"],
        })
        assert resp.status_code == 202
        await wait_for_run(resp.json()["run_id"])

        detail = (await client.get(f"/api/runs/{resp.json()['run_id']}")).json()
        assert detail["pc_page_name"] == "PC"
        assert detail["components"] == ["toast"]

    @pytest.mark.asyncio
    async def test_returns_202_with_running_status(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        resp = await client.post("/api/analyze", json=ANALYZE_PAYLOAD)

        assert resp.status_code == 202
        data = resp.json()
        assert data["run_id"].startswith("run_")
        assert data["status"] == "running"
        assert data["message"] == "Analysis started"
        await wait_for_run(data["run_id"])


# ---------------------------------------------------------------------------
# End-to-end run
# ---------------------------------------------------------------------------


class TestAnalysisRunEndToEnd:

    @pytest.mark.asyncio
    async def test_run_completes_with_counts(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        detail = await _start_and_wait(client, ANALYZE_PAYLOAD)

        assert detail["status"] == "completed"
        assert detail["completed_at"] is not None
        assert detail["components"] == ["toast", "accordion", "bottomsheet"]
        # PC: toast_success + Accordion/FAQ; SP: Toast_Success + BottomSheet/Actions
        assert detail["total_pc"] == 2
        assert detail["total_sp"] == 2
        assert detail["total_inconsistencies"] == 2
        assert detail["average_pc_score"] == 70.0
        assert len(detail["results"]) == 4

        kinds = {(i["component_type"], i["pc_component"], i["sp_component"]) for i in detail["inconsistencies"]}
        assert kinds == {
            ("accordion", "accordion/faq", None),
            ("bottomsheet", None, "bottomsheet/actions"),
        }
        assert all(i["severity"] == "high" for i in detail["inconsistencies"])
        assert fake_figma.closed and fake_vision.closed

    @pytest.mark.asyncio
    async def test_result_keeps_frame_context(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        detail = await _start_and_wait(client, {**ANALYZE_PAYLOAD, "components": ["toast"]})

        pc_toast = next(r for r in detail["results"] if r["device_type"] == "pc")
        assert pc_toast["component_name"] == "toast_success"
        assert pc_toast["frame_name"] == "Confirm"
        assert pc_toast["page_name"] == "PC"
        assert pc_toast["image_url"] == "https://img.test/pc-file/10:2.png"
        assert detail["inconsistencies"] == []

    @pytest.mark.asyncio
    async def test_failed_fetch_marks_run_failed(self, client: AsyncClient, make_figma, fake_vision):
        _use_runner(make_figma(fail_on="sp-file"), fake_vision)
        detail = await _start_and_wait(client, ANALYZE_PAYLOAD)

        assert detail["status"] == "failed"
        assert "sp-file" in detail["error"]
        assert detail["results"] == []


# ---------------------------------------------------------------------------
# GET /api/runs
# ---------------------------------------------------------------------------


class TestRunQueries:

    @pytest.mark.asyncio
    async def test_get_unknown_run(self, client: AsyncClient):
        resp = await client.get("/api/runs/run_doesnotexist")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_list_runs(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        await _start_and_wait(client, ANALYZE_PAYLOAD)

        resp = await client.get("/api/runs")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["page"] == 1
        assert data["runs"][0]["status"] == "completed"
        assert data["runs"][0]["created_at"].endswith("Z")

    @pytest.mark.asyncio
    async def test_list_runs_status_filter(self, client: AsyncClient, fake_figma, fake_vision):
        _use_runner(fake_figma, fake_vision)
        await _start_and_wait(client, ANALYZE_PAYLOAD)

        resp = await client.get("/api/runs", params={"status": "failed"})
        assert resp.json()["total"] == 0


# ---------------------------------------------------------------------------
# POST /api/components/search
# ---------------------------------------------------------------------------


class _SearchFigma:
    def __init__(self, components=None, error=None):
        self.components = components or []
        self.error = error

    async def search_components(self, file_key, component_type, page_name=None):
        if self.error:
            raise self.error
        return self.components


class TestComponentSearch:

    @pytest.mark.asyncio
    async def test_requires_figma_token(self, client: AsyncClient):
        with patch("design_audit.config.FIGMA_TOKEN", ""):
            resp = await client.post("/api/components/search", json={
                "file_key": "pc-file", "component_type": "toast",
            })
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_search_returns_components(self, client: AsyncClient):
        from app.main import app

        found = [{"node_id": "10:2", "name": "toast_success", "frame_name": "Confirm", "image_url": "u"}]
        app.dependency_overrides[get_figma_client] = lambda: _SearchFigma(found)

        resp = await client.post("/api/components/search", json={
            "fileKey": "pc-file", "componentType": "Toast",
        })

        assert resp.status_code == 200
        data = resp.json()
        assert data["component_type"] == "toast"
        assert data["total"] == 1
        assert data["components"][0]["frame_name"] == "Confirm"

    @pytest.mark.asyncio
    async def test_unsupported_type_rejected(self, client: AsyncClient):
        from app.main import app

        app.dependency_overrides[get_figma_client] = lambda: _SearchFigma()
        resp = await client.post("/api/components/search", json={
            "file_key": "pc-file", "component_type": "carousel",
        })
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_figma_error_maps_to_502(self, client: AsyncClient):
        from app.main import app

        app.dependency_overrides[get_figma_client] = lambda: _SearchFigma(
            error=FigmaClientError("Figma resource not found: /v1/files/x"),
        )
        resp = await client.post("/api/components/search", json={
            "file_key": "x", "component_type": "toast",
        })
        assert resp.status_code == 502


# ---------------------------------------------------------------------------
# Guidelines
# ---------------------------------------------------------------------------


class TestGuidelineRoutes:

    @pytest.mark.asyncio
    async def test_list_supported_types(self, client: AsyncClient):
        resp = await client.get("/api/guidelines")
        assert resp.json() == {"component_types": ["toast", "accordion", "bottomsheet"]}

    @pytest.mark.asyncio
    async def test_get_guideline(self, client: AsyncClient):
        resp = await client.get("/api/guidelines/toast")
        assert resp.status_code == 200
        data = resp.json()
        assert data["rules"]["message"]["maxLength"] == 40
        assert "toast" in data["name_patterns"]

    @pytest.mark.asyncio
    async def test_unknown_guideline_404(self, client: AsyncClient):
        resp = await client.get("/api/guidelines/carousel")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_check_toast_violations(self, client: AsyncClient):
        resp = await client.post("/api/guidelines/toast/check", json={
            "extracted_content": "あ" * 41,
            "type": "critical",
            "placement": "left edge",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["score"] == 55
        assert len(data["violations"]) == 3
        assert "メッセージを40文字以内に短縮してください" in data["recommendations"]

    @pytest.mark.asyncio
    async def test_check_accepts_camel_case(self, client: AsyncClient):
        resp = await client.post("/api/guidelines/accordion/check", json={
            "hasHeader": True,
            "hasIcon": True,
        })
        assert resp.status_code == 200
        assert resp.json()["score"] == 100

        resp = await client.post("/api/guidelines/bottomsheet/check", json={
            "deviceType": "pc",
        })
        assert resp.json()["score"] == 70

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.json() == {"status": "ok"}
