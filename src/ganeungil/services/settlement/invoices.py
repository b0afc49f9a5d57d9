"""Monthly tax invoices for business contracts."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable

from ...errors import StoreError
from ...models.domain import TaxInvoice, utcnow
from ...persistence.retry import with_retry
from ...persistence.store import BatchOperation, DocumentStore, new_document_id, where
from .aggregator import BatchRunResult, completed_deliveries
from .periods import period_bounds
from .policy import InvoiceIssuer, SettlementPolicy, default_settlement_policy, round_won

CONTRACTS_COLLECTION = "business_contracts"
INVOICES_COLLECTION = "tax_invoices"

logger = logging.getLogger(__name__)


def invoice_number(year: int, month: int, sequence: int) -> str:
    return f"TAX-{year:04d}{month:02d}-{sequence:04d}"


class TaxInvoiceGenerator:
    def __init__(
        self,
        store: DocumentStore,
        policy: SettlementPolicy | None = None,
        *,
        issuer: InvoiceIssuer | None = None,
        clock: Callable[[], datetime] = utcnow,
        tz: str | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or default_settlement_policy()
        self.issuer = issuer or InvoiceIssuer()
        self.clock = clock
        self.tz = tz

    async def run_period(self, year: int, month: int) -> BatchRunResult:
        """Issue one invoice per active contract with completed deliveries in the month."""
        start, end = period_bounds(year, month, self.tz)
        period_key = f"{year:04d}-{month:02d}"
        result = BatchRunResult()

        contracts = await with_retry(
            lambda: self.store.query(CONTRACTS_COLLECTION, [where("status", "==", "active")]),
            description="load active contracts",
        )
        if not contracts:
            logger.warning("No active B2B contracts found")
            return result
        issued = await with_retry(
            lambda: self.store.query(INVOICES_COLLECTION, [where("period_key", "==", period_key)]),
            description=f"load invoices for {period_key}",
        )
        invoiced_contracts = {doc.data.get("contract_id") for doc in issued}
        sequence = len(issued)

        operations: list[BatchOperation] = []
        staged: list[TaxInvoice] = []
        for contract in sorted(contracts, key=lambda doc: doc.id):
            result.processed += 1
            if contract.id in invoiced_contracts:
                logger.info(f"Contract {contract.id} already invoiced for {period_key}; skipping")
                continue
            try:
                deliveries = await completed_deliveries(self.store, "contract_id", contract.id, start, end)
            except StoreError as exc:
                message = f"Error processing contract {contract.id}: {exc}"
                logger.error(message)
                result.errors.append(message)
                continue
            if not deliveries:
                logger.debug(f"No deliveries for contract {contract.id} in {period_key}")
                continue

            subtotal = round_won(sum((Decimal(str(doc.data.get("fee_total") or 0)) for doc in deliveries), Decimal("0")))
            tax = round_won(Decimal(subtotal) * self.policy.vat_rate)
            sequence += 1
            data = contract.data
            invoice = TaxInvoice(
                invoice_number=invoice_number(year, month, sequence),
                contract_id=contract.id,
                company_id=data.get("company_id"),
                issuer=self.issuer.to_document(),
                recipient={
                    "name": data.get("company_name"),
                    "registration_number": data.get("company_registration_number"),
                    "ceo": data.get("company_ceo"),
                    "address": data.get("company_address"),
                    "contact": data.get("company_contact"),
                },
                year=year,
                month=month,
                period_start=start,
                period_end=end,
                delivery_count=len(deliveries),
                subtotal=subtotal,
                tax=tax,
                issued_at=self.clock(),
            )
            staged.append(invoice)
            operations.append(
                BatchOperation(kind="create", collection=INVOICES_COLLECTION, doc_id=new_document_id(), data=invoice.to_document())
            )
            logger.info(f"Contract {contract.id}: {len(deliveries)} deliveries, {subtotal}원 (tax: {tax}원)")

        if operations:
            try:
                await with_retry(
                    lambda: self.store.atomic_batch(operations),
                    description=f"commit tax invoices for {period_key}",
                )
            except StoreError as exc:
                for invoice in staged:
                    result.errors.append(f"Error committing invoice for contract {invoice.contract_id}: {exc}")
                logger.error(f"Tax invoice batch for {period_key} failed: {exc}")
                return result
            result.generated = len(staged)
            result.total_amount = sum(invoice.total_amount for invoice in staged)
            logger.info(f"Tax invoice run for {period_key} finished: {result.generated} invoices generated")
        return result
