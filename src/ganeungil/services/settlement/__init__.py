"""Monthly settlement and tax invoice batch jobs."""

from .aggregator import BatchRunResult, SettlementAggregator
from .invoices import TaxInvoiceGenerator
from .periods import previous_period

__all__ = ["BatchRunResult", "SettlementAggregator", "TaxInvoiceGenerator", "previous_period"]
