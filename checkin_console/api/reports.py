"""
Report API routes.

POST /api/reports runs a report and holds it for the calling admin; the list
comes back immediately with placeholder addresses that fill in as geocoding
finishes, so clients poll GET /api/reports/current.  Both exports work on the
held list and never query the store again.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from checkin_console.core.middleware import require_role
from checkin_console.db.models import Employee
from checkin_console.db.session import get_db
from checkin_console.roles import role_display_name
from checkin_console.schemas.report import (
    CheckInOut,
    ReportEmployee,
    ReportRequest,
    ReportResponse,
)
from checkin_console.services.csv_export import export_csv
from checkin_console.services.event_store import EventStore
from checkin_console.services.geocoding import GeocodingResolver, get_geocoding_resolver
from checkin_console.services.pdf_renderer import ReportMeta, render_document, report_filename
from checkin_console.services.report_engine import ReportEngine, ReportQueryError
from checkin_console.services.report_state import (
    ReportRegistry,
    ReportState,
    get_report_registry,
)

logger = logging.getLogger(__name__)

router = APIRouter()

EMPTY_NOTICE = "Nenhum registro encontrado para os filtros selecionados."
NOTHING_TO_EXPORT = "Não há dados para exportar."


def _to_response(state: ReportState) -> ReportResponse:
    employee = None
    if state.employee is not None:
        employee = ReportEmployee(
            id=state.employee.id,
            name=state.employee.name,
            phone=state.employee.phone,
            email=state.employee.email,
            role=state.employee.role,
            role_display=role_display_name(state.employee.role),
        )
    return ReportResponse(
        report_id=state.report_id,
        generation=state.generation,
        status=state.status,
        notice=EMPTY_NOTICE if state.status == "empty" else None,
        start_date=state.start_date,
        end_date=state.end_date,
        employee=employee,
        total=len(state.records),
        pending_addresses=state.pending_addresses,
        records=[CheckInOut.from_record(r) for r in state.records],
    )


def _held_report(registry: ReportRegistry, owner: str) -> ReportState:
    state = registry.current(owner)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Nenhum relatório gerado",
        )
    return state


def _exportable(registry: ReportRegistry, owner: str) -> ReportState:
    state = _held_report(registry, owner)
    if not state.records:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=NOTHING_TO_EXPORT,
        )
    return state


def _meta(state: ReportState) -> ReportMeta:
    return ReportMeta(
        start_date=state.start_date,
        end_date=state.end_date,
        generated_at=datetime.now(timezone.utc),
        employee=state.employee,
    )


def _attachment(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/", response_model=ReportResponse, summary="Generate a check-in report")
async def generate_report(
    body: ReportRequest,
    db: AsyncSession = Depends(get_db),
    resolver: GeocodingResolver = Depends(get_geocoding_resolver),
    registry: ReportRegistry = Depends(get_report_registry),
    current_user: Employee = Depends(require_role("admin")),
) -> ReportResponse:
    engine = ReportEngine(EventStore(db), resolver, registry)
    try:
        state = await engine.generate_report(body, owner=str(current_user.id))
    except ReportQueryError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Erro ao gerar o relatório: {exc}",
        )
    return _to_response(state)


@router.get("/current", response_model=ReportResponse, summary="Poll the held report")
async def current_report(
    registry: ReportRegistry = Depends(get_report_registry),
    current_user: Employee = Depends(require_role("admin")),
) -> ReportResponse:
    return _to_response(_held_report(registry, str(current_user.id)))


@router.get("/current/export.csv", summary="Download the held report as CSV")
async def export_current_csv(
    registry: ReportRegistry = Depends(get_report_registry),
    current_user: Employee = Depends(require_role("admin")),
) -> Response:
    state = _exportable(registry, str(current_user.id))
    content = export_csv(state.records)
    filename = report_filename(_meta(state), "csv")
    logger.info("CSV exportado: %s (%d registros)", filename, len(state.records))
    return _attachment(content, "text/csv; charset=utf-8", filename)


@router.get("/current/export.pdf", summary="Download the held report as PDF")
async def export_current_pdf(
    registry: ReportRegistry = Depends(get_report_registry),
    current_user: Employee = Depends(require_role("admin")),
) -> Response:
    state = _exportable(registry, str(current_user.id))
    document = render_document(list(state.records), _meta(state))
    return _attachment(document.content, "application/pdf", document.filename)


@router.delete("/current", status_code=status.HTTP_204_NO_CONTENT, summary="Discard the held report")
async def discard_current_report(
    registry: ReportRegistry = Depends(get_report_registry),
    current_user: Employee = Depends(require_role("admin")),
) -> None:
    # Address tasks still in flight for it will find no matching generation
    registry.clear(str(current_user.id))
