"""Monthly batch entry points, called by an external scheduler."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...persistence.store import DocumentStore
from ...schemas.settlement import PeriodRunRequest, SettlementRunModel, TaxInvoiceRunModel
from ...services.settlement import SettlementAggregator, TaxInvoiceGenerator, previous_period
from ..dependencies import get_store, raise_http_error

router = APIRouter(prefix="/batch", tags=["batch"])


def _resolve_period(payload: PeriodRunRequest) -> tuple[int, int]:
    if payload.year is not None and payload.month is not None:
        return payload.year, payload.month
    return previous_period()


@router.post("/settlements", response_model=SettlementRunModel, status_code=status.HTTP_200_OK)
async def run_settlements(payload: PeriodRunRequest, store: DocumentStore = Depends(get_store)) -> SettlementRunModel:
    year, month = _resolve_period(payload)
    try:
        result = await SettlementAggregator(store).run_period(year, month)
    except Exception as exc:
        raise_http_error(exc)
    return SettlementRunModel(
        year=year,
        month=month,
        processed=result.processed,
        settlements_generated=result.generated,
        total_amount=result.total_amount,
        errors=result.errors,
    )


@router.post("/tax-invoices", response_model=TaxInvoiceRunModel, status_code=status.HTTP_200_OK)
async def run_tax_invoices(payload: PeriodRunRequest, store: DocumentStore = Depends(get_store)) -> TaxInvoiceRunModel:
    year, month = _resolve_period(payload)
    try:
        result = await TaxInvoiceGenerator(store).run_period(year, month)
    except Exception as exc:
        raise_http_error(exc)
    return TaxInvoiceRunModel(
        year=year,
        month=month,
        processed=result.processed,
        invoices_generated=result.generated,
        total_amount=result.total_amount,
        errors=result.errors,
    )
