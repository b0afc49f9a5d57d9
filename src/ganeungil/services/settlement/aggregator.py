"""Monthly carrier settlement batch."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable, List

from ...errors import StoreError
from ...models.domain import CarrierTier, Settlement, SettlementEarnings, from_iso, utcnow
from ...persistence.retry import with_retry
from ...persistence.store import BatchOperation, Document, DocumentStore, new_document_id, where
from .periods import period_bounds, within
from .policy import SettlementPolicy, default_settlement_policy, round_won

USERS_COLLECTION = "users"
DELIVERIES_COLLECTION = "b2b_deliveries"
SETTLEMENTS_COLLECTION = "b2b_settlements"

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchRunResult:
    processed: int = 0
    generated: int = 0
    total_amount: int = 0
    errors: List[str] = field(default_factory=list)


async def completed_deliveries(
    store: DocumentStore,
    owner_field: str,
    owner_id: str,
    start: datetime,
    end: datetime,
) -> list[Document]:
    """Completed B2B deliveries of one carrier or contract inside [start, end]."""
    documents = await with_retry(
        lambda: store.query(
            DELIVERIES_COLLECTION,
            [where(owner_field, "==", owner_id), where("status", "==", "completed")],
        ),
        description=f"load deliveries for {owner_field}={owner_id}",
    )
    return [doc for doc in documents if within(from_iso(doc.data.get("completed_at")), start, end)]


def compute_earnings(
    policy: SettlementPolicy,
    tier: CarrierTier,
    net_fees: list[float | int],
    rating: float,
) -> SettlementEarnings:
    base = round_won(sum((Decimal(str(fee or 0)) for fee in net_fees), Decimal("0")))
    tier_bonus = round_won(Decimal(base) * policy.tier_bonus_rates[tier])
    activity_bonus = policy.activity_bonus if len(net_fees) >= policy.activity_threshold else 0
    quality_bonus = policy.quality_bonus if rating >= policy.quality_rating_threshold else 0
    bonus_total = tier_bonus + activity_bonus + quality_bonus
    subtotal = base + bonus_total
    withholding_tax = round_won(Decimal(subtotal) * policy.withholding_rate)
    return SettlementEarnings(
        base=base,
        tier_bonus=tier_bonus,
        activity_bonus=activity_bonus,
        quality_bonus=quality_bonus,
        bonus_total=bonus_total,
        subtotal=subtotal,
        withholding_tax=withholding_tax,
        net_amount=subtotal - withholding_tax,
    )


class SettlementAggregator:
    """Computes and stores one settlement per carrier per month.

    Each tier is committed as one atomic batch. A failed commit is recorded as
    one error per carrier of that tier and the remaining tiers still run.
    Re-running a period skips carriers that already have a settlement for it.
    """

    def __init__(
        self,
        store: DocumentStore,
        policy: SettlementPolicy | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        tz: str | None = None,
    ) -> None:
        self.store = store
        self.policy = policy or default_settlement_policy()
        self.clock = clock
        self.tz = tz

    async def run_period(self, year: int, month: int) -> BatchRunResult:
        start, end = period_bounds(year, month, self.tz)
        period_key = f"{year:04d}-{month:02d}"
        result = BatchRunResult()
        logger.info(f"Settlement run for {period_key} started")

        for tier in CarrierTier:
            carriers = await with_retry(
                lambda: self.store.query(USERS_COLLECTION, [where("carrier_tier", "==", tier.value)]),
                description=f"load {tier.value} carriers",
            )
            logger.info(f"Found {len(carriers)} {tier.value} carriers")

            operations: list[BatchOperation] = []
            staged: list[Settlement] = []
            for carrier in sorted(carriers, key=lambda doc: doc.id):
                result.processed += 1
                try:
                    settlement = await self._settle(carrier, tier, year, month, start, end, period_key)
                except StoreError as exc:
                    message = f"Error processing carrier {carrier.id}: {exc}"
                    logger.error(message)
                    result.errors.append(message)
                    continue
                if settlement is None:
                    continue
                staged.append(settlement)
                operations.append(
                    BatchOperation(
                        kind="create",
                        collection=SETTLEMENTS_COLLECTION,
                        doc_id=new_document_id(),
                        data=settlement.to_document(),
                    )
                )

            if not operations:
                continue
            try:
                await with_retry(
                    lambda: self.store.atomic_batch(operations),
                    description=f"commit {tier.value} settlements for {period_key}",
                )
            except StoreError as exc:
                for settlement in staged:
                    result.errors.append(f"Error committing settlement for carrier {settlement.carrier_id}: {exc}")
                logger.error(f"{tier.value} settlement batch for {period_key} failed: {exc}")
                continue
            result.generated += len(staged)
            result.total_amount += sum(settlement.earnings.net_amount for settlement in staged)

        logger.info(
            f"Settlement run for {period_key} finished: {result.generated} settlements, "
            f"{result.total_amount}원 total, {len(result.errors)} errors"
        )
        return result

    async def _settle(
        self,
        carrier: Document,
        tier: CarrierTier,
        year: int,
        month: int,
        start: datetime,
        end: datetime,
        period_key: str,
    ) -> Settlement | None:
        existing = await with_retry(
            lambda: self.store.query(
                SETTLEMENTS_COLLECTION,
                [where("carrier_id", "==", carrier.id), where("period_key", "==", period_key)],
            ),
            description=f"check settlement of {carrier.id}",
        )
        if existing:
            logger.info(f"Carrier {carrier.id} already settled for {period_key}; skipping")
            return None

        deliveries = await completed_deliveries(self.store, "carrier_id", carrier.id, start, end)
        if not deliveries:
            logger.debug(f"No B2B deliveries for carrier {carrier.id} in {period_key}")
            return None

        profile = carrier.data
        earnings = compute_earnings(
            self.policy,
            tier,
            [doc.data.get("carrier_net") or 0 for doc in deliveries],
            float(profile.get("rating") or 0.0),
        )
        bank = profile.get("bank_account") or {}
        logger.info(
            f"Carrier {carrier.id} ({tier.value}): {len(deliveries)} deliveries, {earnings.base}원 base, "
            f"{earnings.bonus_total}원 bonus, {earnings.net_amount}원 net"
        )
        return Settlement(
            carrier_id=carrier.id,
            carrier_name=str(profile.get("name") or "익명"),
            tier=tier,
            year=year,
            month=month,
            period_start=start,
            period_end=end,
            delivery_count=len(deliveries),
            earnings=earnings,
            bank_account={
                "bank": bank.get("bank", ""),
                "account_number": bank.get("account_number", ""),
                "account_holder": bank.get("account_holder", ""),
            },
            created_at=self.clock(),
        )
