import asyncio

from ganeungil.persistence.store import InMemoryDocumentStore
from ganeungil.services.settlement import TaxInvoiceGenerator
from ganeungil.services.settlement.invoices import invoice_number


def _contract(name: str, status: str = "active") -> dict:
    return {
        "company_id": f"company-{name}",
        "company_name": name,
        "company_registration_number": "111-22-33333",
        "company_ceo": "최대표",
        "company_address": "서울특별시 중구",
        "company_contact": "02-000-0000",
        "status": status,
    }


def _delivery(contract_id: str, fee_total: int, completed_at: str = "2024-03-10T09:00:00+09:00") -> dict:
    return {
        "carrier_id": "carrier-1",
        "contract_id": contract_id,
        "status": "completed",
        "completed_at": completed_at,
        "fee_total": fee_total,
        "carrier_net": fee_total // 2,
    }


def _store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore(
        {
            "business_contracts": {
                "contract-a": _contract("에이상사"),
                "contract-b": _contract("비물류"),
                "contract-c": _contract("씨유통", status="terminated"),
            },
            "b2b_deliveries": {
                "d1": _delivery("contract-a", 12_000),
                "d2": _delivery("contract-a", 12_000),
                "d3": _delivery("contract-a", 12_345),
                "d4": _delivery("contract-a", 50_000, completed_at="2024-04-01T00:10:00+09:00"),
                "d5": _delivery("contract-c", 9_000),
            },
        }
    )


def _invoices(store: InMemoryDocumentStore) -> dict:
    return {doc["contract_id"]: doc for doc in store.dump("tax_invoices").values()}


def test_invoice_number_format():
    assert invoice_number(2024, 3, 1) == "TAX-202403-0001"
    assert invoice_number(2023, 12, 27) == "TAX-202312-0027"


def test_invoice_totals_with_vat():
    store = _store()

    result = asyncio.run(TaxInvoiceGenerator(store, tz="Asia/Seoul").run_period(2024, 3))

    assert result.processed == 2
    assert result.generated == 1
    assert result.errors == []
    invoice = _invoices(store)["contract-a"]
    # 36_345 * 0.1 = 3634.5 rounds up
    assert invoice["totals"] == {"subtotal": 36_345, "tax": 3_635, "total_amount": 39_980}
    assert invoice["invoice_number"] == "TAX-202403-0001"
    assert invoice["items"][0]["quantity"] == 3
    assert invoice["recipient"]["name"] == "에이상사"
    assert invoice["issuer"]["name"] == "가는길에"
    assert invoice["status"] == "issued"
    assert result.total_amount == 39_980


def test_rerun_skips_invoiced_contracts_and_continues_numbering():
    store = _store()
    generator = TaxInvoiceGenerator(store, tz="Asia/Seoul")
    asyncio.run(generator.run_period(2024, 3))

    again = asyncio.run(generator.run_period(2024, 3))
    assert again.generated == 0
    assert len(store.dump("tax_invoices")) == 1

    asyncio.run(store.create("b2b_deliveries", _delivery("contract-b", 20_000)))
    late = asyncio.run(generator.run_period(2024, 3))

    assert late.generated == 1
    assert _invoices(store)["contract-b"]["invoice_number"] == "TAX-202403-0002"


def test_no_active_contracts_yields_empty_result():
    store = InMemoryDocumentStore({"business_contracts": {"c": _contract("끝난회사", status="terminated")}})

    result = asyncio.run(TaxInvoiceGenerator(store, tz="Asia/Seoul").run_period(2024, 3))

    assert (result.processed, result.generated, result.total_amount) == (0, 0, 0)
    assert store.dump("tax_invoices") == {}
