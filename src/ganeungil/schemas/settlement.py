"""Batch job schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class PeriodRunRequest(BaseModel):
    """Explicit period; omitted fields default to the previous month."""

    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    month: Optional[int] = Field(default=None, ge=1, le=12)


class SettlementRunModel(BaseModel):
    year: int
    month: int
    processed: int
    settlements_generated: int
    total_amount: int
    errors: List[str]


class TaxInvoiceRunModel(BaseModel):
    year: int
    month: int
    processed: int
    invoices_generated: int
    total_amount: int
    errors: List[str]
