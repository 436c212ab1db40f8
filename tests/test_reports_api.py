"""
Report API tests.

Tests:
  - POST /api/reports returns the sorted list with placeholders, then
    GET /api/reports/current shows the resolved addresses
  - empty result → 200 with status "empty" and the notice
  - exports: CSV and PDF attachments with deterministic filenames
  - no held report → 404, held but empty → 409
  - start_date after end_date → 422
  - non-admin → 403, anonymous → 401
  - store failure or unreachable store → 503 with the reason
"""

from datetime import datetime, timezone

from httpx import AsyncClient
from sqlalchemy.exc import SQLAlchemyError

from checkin_console.services.event_store import EventStore
from conftest import add_event

PERIOD = {"start_date": "2024-03-10", "end_date": "2024-03-10"}
LOC = {"latitude": -23.55, "longitude": -46.63, "accuracy": 8}


async def _seed(db, user_id: str) -> None:
    await add_event(db, user_id=user_id, event_id="morning",
                    recorded_at=datetime(2024, 3, 10, 11, 0, tzinfo=timezone.utc), location=LOC)
    await add_event(db, user_id=user_id, event_id="evening",
                    timestamp={"seconds": int(datetime(2024, 3, 10, 21, 0, tzinfo=timezone.utc).timestamp())},
                    location=LOC)
    await add_event(db, user_id=user_id, event_id="other-day",
                    timestamp="2024-03-12T10:00:00-03:00", location=LOC)


class TestGenerate:
    async def test_generate_then_poll(self, client: AsyncClient, admin_headers, admin_user, db, guard_user, registry) -> None:
        await _seed(db, str(guard_user.id))

        resp = await client.post("/api/reports/", json=PERIOD, headers=admin_headers)
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["status"] == "ready"
        assert data["total"] == 2
        assert [r["id"] for r in data["records"]] == ["evening", "morning"]
        assert data["records"][0]["username"] == "João Silva"

        await registry.current(str(admin_user.id)).settled()

        resp = await client.get("/api/reports/current", headers=admin_headers)
        assert resp.status_code == 200
        polled = resp.json()
        assert polled["report_id"] == data["report_id"]
        assert polled["pending_addresses"] == 0
        assert [r["id"] for r in polled["records"]] == ["evening", "morning"]
        assert all(r["address"].startswith("Rua ") for r in polled["records"])

    async def test_employee_report_carries_profile(self, client: AsyncClient, admin_headers, admin_user, db, guard_user, registry) -> None:
        await _seed(db, str(guard_user.id))
        resp = await client.post(
            "/api/reports/", json={**PERIOD, "employee_id": str(guard_user.id)}, headers=admin_headers
        )
        assert resp.status_code == 200, resp.text
        employee = resp.json()["employee"]
        assert employee["name"] == "João Silva"
        assert employee["role_display"] == "Vigia"
        await registry.current(str(admin_user.id)).settled()

    async def test_empty_result(self, client: AsyncClient, admin_headers) -> None:
        resp = await client.post("/api/reports/", json=PERIOD, headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "empty"
        assert data["records"] == []
        assert data["notice"] == "Nenhum registro encontrado para os filtros selecionados."

    async def test_inverted_range_rejected(self, client: AsyncClient, admin_headers) -> None:
        resp = await client.post(
            "/api/reports/", json={"start_date": "2024-03-11", "end_date": "2024-03-10"}, headers=admin_headers
        )
        assert resp.status_code == 422

    async def test_store_failure_returns_503(self, client: AsyncClient, admin_headers, monkeypatch) -> None:
        async def broken_query(self, user_id=None):
            raise SQLAlchemyError("banco indisponível")

        monkeypatch.setattr(EventStore, "query", broken_query)
        resp = await client.post("/api/reports/", json=PERIOD, headers=admin_headers)
        assert resp.status_code == 503
        assert resp.json()["detail"] == "Erro ao gerar o relatório: banco indisponível"

        resp = await client.get("/api/reports/current", headers=admin_headers)
        assert resp.status_code == 404

    async def test_unreachable_store_returns_503(self, client: AsyncClient, admin_headers, monkeypatch) -> None:
        async def refused(self, user_id=None):
            raise ConnectionRefusedError("Connect call failed")

        monkeypatch.setattr(EventStore, "query", refused)
        resp = await client.post("/api/reports/", json=PERIOD, headers=admin_headers)
        assert resp.status_code == 503
        assert resp.json()["detail"] == "Erro ao gerar o relatório: Connect call failed"


class TestAccess:
    async def test_anonymous(self, client: AsyncClient) -> None:
        resp = await client.post("/api/reports/", json=PERIOD)
        assert resp.status_code == 401

    async def test_non_admin_forbidden(self, client: AsyncClient, guard_headers) -> None:
        resp = await client.post("/api/reports/", json=PERIOD, headers=guard_headers)
        assert resp.status_code == 403


class TestExport:
    async def test_nothing_held(self, client: AsyncClient, admin_headers) -> None:
        resp = await client.get("/api/reports/current/export.pdf", headers=admin_headers)
        assert resp.status_code == 404

    async def test_empty_report_cannot_export(self, client: AsyncClient, admin_headers) -> None:
        await client.post("/api/reports/", json=PERIOD, headers=admin_headers)
        for fmt in ("csv", "pdf"):
            resp = await client.get(f"/api/reports/current/export.{fmt}", headers=admin_headers)
            assert resp.status_code == 409
            assert resp.json()["detail"] == "Não há dados para exportar."

    async def test_pdf_and_csv(self, client: AsyncClient, admin_headers, admin_user, db, guard_user, registry) -> None:
        await _seed(db, str(guard_user.id))
        await client.post("/api/reports/", json={**PERIOD, "employee_id": str(guard_user.id)}, headers=admin_headers)
        await registry.current(str(admin_user.id)).settled()

        pdf = await client.get("/api/reports/current/export.pdf", headers=admin_headers)
        assert pdf.status_code == 200
        assert pdf.headers["content-type"] == "application/pdf"
        assert pdf.content.startswith(b"%PDF")
        assert 'filename="relatorio_JooSilva_2024-03-10_a_2024-03-10.pdf"' in pdf.headers["content-disposition"]

        csv = await client.get("/api/reports/current/export.csv", headers=admin_headers)
        assert csv.status_code == 200
        assert csv.headers["content-type"].startswith("text/csv")
        assert 'filename="relatorio_JooSilva_2024-03-10_a_2024-03-10.csv"' in csv.headers["content-disposition"]
        lines = csv.content.decode("utf-8-sig").strip().splitlines()
        assert len(lines) == 3
        assert lines[1].startswith("evening,")

    async def test_discard_held_report(self, client: AsyncClient, admin_headers) -> None:
        await client.post("/api/reports/", json=PERIOD, headers=admin_headers)
        resp = await client.delete("/api/reports/current", headers=admin_headers)
        assert resp.status_code == 204
        resp = await client.get("/api/reports/current/export.csv", headers=admin_headers)
        assert resp.status_code == 404
