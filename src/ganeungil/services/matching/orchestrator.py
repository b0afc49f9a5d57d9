"""Delivery request matching state machine.

    pending -> matching -> matched
                   |  ^
    reject/expiry  v  |  next candidate (retry_count + 1)
                 failed   (retries exhausted)

A request is cancellable any time before ``matched``. Every transition for a
request runs under that request's lock and reads the store before writing,
so a request never has more than one pending match.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import itertools
import logging
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar
from zoneinfo import ZoneInfo

from ...config import settings
from ...data.carrier_repository import CarrierDirectory
from ...data.station_repository import StationRepository
from ...errors import BusinessRuleError, MatchingFailedError, StoreError
from ...models.domain import (
    DeliveryRequest,
    Match,
    MatchStatus,
    PackageSize,
    RequestStatus,
    Urgency,
    to_iso,
    utcnow,
)
from ...persistence.retry import with_retry
from ...persistence.store import BatchOperation, DocumentStore, new_document_id, where
from . import notifications as events
from .evaluator import RouteEvaluator
from .models import ScoredCandidate
from .notifications import LoggingNotificationSink, NotificationEvent, NotificationSink
from .policy import MatchingPolicy, ScoringPolicy, default_matching_policy, default_scoring_policy
from .scoring import MatchScorer, score_candidates
from .timers import MatchTimer, TimerHandle

REQUESTS_COLLECTION = "requests"
MATCHES_COLLECTION = "matches"

T = TypeVar("T")

logger = logging.getLogger(__name__)


def local_weekday() -> int:
    """ISO weekday (1=Mon) in the service timezone."""
    return datetime.now(ZoneInfo(settings.timezone)).isoweekday()


class MatchingOrchestrator:
    def __init__(
        self,
        store: DocumentStore,
        stations: StationRepository,
        carriers: CarrierDirectory,
        timer: MatchTimer,
        notifier: NotificationSink | None = None,
        *,
        matching_policy: MatchingPolicy | None = None,
        scoring_policy: ScoringPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
        weekday_provider: Callable[[], Optional[int]] = local_weekday,
    ) -> None:
        self.store = store
        self.stations = stations
        self.carriers = carriers
        self.timer = timer
        self.notifier = notifier or LoggingNotificationSink()
        self.policy = matching_policy or default_matching_policy()
        self.scoring_policy = scoring_policy or default_scoring_policy()
        self.clock = clock
        self.weekday_provider = weekday_provider
        # request id -> (lock, number of holders and waiters)
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}
        self._windows: Dict[str, Tuple[int, TimerHandle]] = {}
        self._tokens = itertools.count(1)

    # ------------------------------------------------------------------
    # Requester actions
    # ------------------------------------------------------------------
    async def create_request(
        self,
        requester_id: str,
        pickup_station_id: str,
        dropoff_station_id: str,
        *,
        urgency: Urgency = Urgency.NORMAL,
        package_size: PackageSize = PackageSize.SMALL,
        package_weight_kg: float = 1.0,
        preferred_days: Sequence[int] = (),
        fee_total: int = 0,
        pickup_start_time: Optional[str] = None,
    ) -> DeliveryRequest:
        """Persist a new request and immediately start matching it."""
        if pickup_station_id == dropoff_station_id:
            raise BusinessRuleError("same_station", "출발역과 도착역이 같습니다.")
        snapshot = await self.stations.snapshot()
        for station_id in (pickup_station_id, dropoff_station_id):
            if snapshot.station(station_id) is None:
                raise BusinessRuleError("unknown_station", f"알 수 없는 역입니다: {station_id}")

        now = self.clock()
        request = DeliveryRequest(
            request_id=new_document_id(),
            requester_id=requester_id,
            pickup_station_id=pickup_station_id,
            dropoff_station_id=dropoff_station_id,
            urgency=urgency,
            package_size=package_size,
            package_weight_kg=package_weight_kg,
            preferred_days=tuple(preferred_days),
            fee_total=fee_total,
            pickup_start_time=pickup_start_time,
            created_at=now,
            updated_at=now,
        )
        await with_retry(
            lambda: self.store.create(REQUESTS_COLLECTION, request.to_document(), doc_id=request.request_id),
            description=f"create request {request.request_id}",
        )
        logger.info(f"Request {request.request_id} created by {requester_id}: {pickup_station_id} -> {dropoff_station_id}")
        return await self.start_matching(request.request_id)

    async def start_matching(self, request_id: str) -> DeliveryRequest:
        async with self._lock(request_id):
            request = await self._load_request(request_id)
            if request.status != RequestStatus.PENDING:
                return request
            request.status = RequestStatus.MATCHING
            await self._attempt(request)
            return request

    async def cancel_request(self, request_id: str, requester_id: str) -> DeliveryRequest:
        async with self._lock(request_id):
            request = await self._load_request(request_id)
            if request.requester_id != requester_id:
                raise BusinessRuleError("not_request_owner", "본인의 요청만 취소할 수 있습니다.")
            if request.status == RequestStatus.CANCELLED:
                return request
            if request.status not in (RequestStatus.PENDING, RequestStatus.MATCHING):
                raise BusinessRuleError("request_already_resolved", "이미 처리된 요청은 취소할 수 없습니다.")

            self._clear_window(request_id)
            pending = await self._pending_matches(request)
            now = self.clock()
            request.status = RequestStatus.CANCELLED
            request.updated_at = now
            operations = [self._request_write(request)]
            for match in pending:
                match.status = MatchStatus.EXPIRED
                match.decided_at = now
                operations.append(self._match_write(match))
            await self._commit(request, operations, f"cancel request {request_id}")

            for match in pending:
                self._notify(events.REQUEST_CANCELLED, match.carrier_id, request, match)
            logger.info(f"Request {request_id} cancelled by requester")
            return request

    async def matching_status(self, request_id: str, user_id: str) -> Tuple[DeliveryRequest, List[Match]]:
        """Request state and match history, visible to the requester and to carriers it was offered to."""
        request = await self._load_request(request_id)
        history = await self._match_history(request_id)
        if user_id != request.requester_id and all(match.carrier_id != user_id for match in history):
            raise BusinessRuleError("not_request_owner", "본인의 요청만 조회할 수 있습니다.")
        return request, history

    # ------------------------------------------------------------------
    # Carrier actions
    # ------------------------------------------------------------------
    async def accept_match(self, match_id: str, carrier_id: str) -> Match:
        match = await self._load_match(match_id, carrier_id)
        async with self._lock(match.request_id):
            match = await self._load_match(match_id, carrier_id)
            if match.status == MatchStatus.ACCEPTED:
                return match
            if match.status != MatchStatus.PENDING:
                raise BusinessRuleError("match_not_pending", "이미 종료된 매칭입니다.")

            request = await self._load_request(match.request_id)
            if request.status != RequestStatus.MATCHING:
                raise BusinessRuleError("request_already_resolved", "이미 처리된 요청입니다.")

            self._clear_window(request.request_id)
            now = self.clock()
            match.status = MatchStatus.ACCEPTED
            match.decided_at = now
            request.status = RequestStatus.MATCHED
            request.carrier_id = match.carrier_id
            request.updated_at = now
            await self._commit(
                request,
                [self._match_write(match), self._request_write(request)],
                f"accept match {match_id}",
            )
            self._notify(events.MATCH_ACCEPTED, request.requester_id, request, match)
            logger.info(f"Match {match_id} accepted: request {request.request_id} -> carrier {carrier_id}")
            return match

    async def reject_match(self, match_id: str, carrier_id: str) -> Match:
        match = await self._load_match(match_id, carrier_id)
        async with self._lock(match.request_id):
            match = await self._load_match(match_id, carrier_id)
            if match.status == MatchStatus.REJECTED:
                return match
            if match.status != MatchStatus.PENDING:
                raise BusinessRuleError("match_not_pending", "이미 종료된 매칭입니다.")

            request = await self._load_request(match.request_id)
            self._clear_window(request.request_id)
            match.status = MatchStatus.REJECTED
            match.decided_at = self.clock()
            await self._commit(request, [self._match_write(match)], f"reject match {match_id}")
            self._notify(events.MATCH_REJECTED, request.requester_id, request, match)
            logger.info(f"Match {match_id} rejected by carrier {carrier_id}")

            if request.status == RequestStatus.MATCHING:
                await self._advance(request)
            return match

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def shutdown(self) -> None:
        """Cancel every acceptance window; no callback fires afterwards."""
        for request_id in list(self._windows):
            self._clear_window(request_id)
        await self.timer.close()

    @property
    def open_windows(self) -> int:
        return len(self._windows)

    @property
    def tracked_requests(self) -> int:
        """Requests with a transition running or queued."""
        return len(self._locks)

    # ------------------------------------------------------------------
    # State machine internals (callers hold the request lock)
    # ------------------------------------------------------------------
    @contextlib.asynccontextmanager
    async def _lock(self, request_id: str) -> AsyncIterator[None]:
        """Serialise transitions of one request; the entry is dropped once nobody uses it."""
        lock, users = self._locks.get(request_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[request_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._locks[request_id]
            if users <= 1:
                del self._locks[request_id]
            else:
                self._locks[request_id] = (lock, users - 1)

    async def _attempt(self, request: DeliveryRequest) -> None:
        """Propose the best untried carrier and open an acceptance window."""
        if await self._pending_matches(request):
            logger.warning(f"Request {request.request_id} already has a pending match; attempt skipped")
            return

        history = await self._guarded(request, lambda: self._match_history(request.request_id), "load match history")
        tried = {match.carrier_id for match in history}
        candidate = await self._next_candidate(request, tried)

        now = self.clock()
        request.updated_at = now
        operations = [self._request_write(request)]
        match: Optional[Match] = None
        if candidate is not None:
            match = Match(
                match_id=new_document_id(),
                request_id=request.request_id,
                carrier_id=candidate.carrier_id,
                score=candidate.score,
                attempt=request.retry_count,
                created_at=now,
                details=candidate.breakdown.as_details(),
            )
            operations.append(
                BatchOperation(kind="create", collection=MATCHES_COLLECTION, doc_id=match.match_id, data=match.to_document())
            )
        await self._commit(request, operations, f"matching attempt {request.retry_count} for {request.request_id}")

        if match is not None:
            self._notify(events.MATCH_CREATED, match.carrier_id, request, match)
            logger.info(
                f"Request {request.request_id} attempt {request.retry_count}: proposed to {match.carrier_id} "
                f"(score {match.score}, level {request.search_level})"
            )
        else:
            logger.info(f"Request {request.request_id} attempt {request.retry_count}: no carrier available, waiting")
        self._open_window(request.request_id, match.match_id if match else None)

    async def _next_candidate(self, request: DeliveryRequest, tried: set[str]) -> Optional[ScoredCandidate]:
        """Top-ranked untried carrier, widening the search level when the ranking runs out."""
        snapshot = await self.stations.snapshot()
        weekday = None if request.preferred_days else self.weekday_provider()
        level = request.search_level
        while True:
            evaluator = RouteEvaluator(snapshot, self.policy.detour_limit(level))
            scorer = MatchScorer(evaluator, self.scoring_policy)
            carriers = await self._guarded(
                request,
                functools.partial(self.carriers.fetch_candidates, request, level, snapshot),
                "fetch carrier candidates",
            )
            ranked = [c for c in score_candidates(scorer, request, carriers, weekday) if c.carrier_id not in tried]
            if ranked:
                request.search_level = level
                return ranked[0]
            if level >= self.policy.max_search_level:
                request.search_level = level
                return None
            level += 1
            logger.info(f"Request {request.request_id}: widening search to level {level}")

    async def _advance(self, request: DeliveryRequest) -> None:
        """After a rejection or expiry: retry with the next candidate, or fail."""
        if request.retry_count < self.policy.max_retries:
            request.retry_count += 1
            await self._attempt(request)
            return

        request.status = RequestStatus.FAILED
        request.failure_reason = "no_carrier_accepted"
        request.updated_at = self.clock()
        await self._commit(request, [self._request_write(request)], f"fail request {request.request_id}")
        self._notify(events.REQUEST_FAILED, request.requester_id, request)
        logger.warning(f"Request {request.request_id} failed after {request.retry_count} retries")

    async def _on_window_closed(self, request_id: str, match_id: Optional[str], token: int) -> None:
        async with self._lock(request_id):
            window = self._windows.get(request_id)
            if window is None or window[0] != token:
                return  # stale timer
            del self._windows[request_id]

            request = await self._load_request(request_id)
            if request.status != RequestStatus.MATCHING:
                return

            if match_id is not None:
                document = await self._guarded(
                    request, lambda: self.store.get(MATCHES_COLLECTION, match_id), "load expiring match"
                )
                if document is not None:
                    match = Match.from_document(document.id, document.data)
                    if match.status != MatchStatus.PENDING:
                        return
                    match.status = MatchStatus.EXPIRED
                    match.decided_at = self.clock()
                    await self._commit(request, [self._match_write(match)], f"expire match {match_id}")
                    self._notify(events.MATCH_EXPIRED, match.carrier_id, request, match)
                    logger.info(f"Match {match_id} expired without a response")

            await self._advance(request)

    def _open_window(self, request_id: str, match_id: Optional[str]) -> None:
        self._clear_window(request_id)
        token = next(self._tokens)
        callback = functools.partial(self._on_window_closed, request_id, match_id, token)
        handle = self.timer.schedule(self.policy.acceptance_timeout_seconds, callback)
        self._windows[request_id] = (token, handle)

    def _clear_window(self, request_id: str) -> None:
        window = self._windows.pop(request_id, None)
        if window is not None:
            window[1].cancel()

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------
    async def _guarded(self, request: DeliveryRequest, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """Run a store operation with retries; on final failure the request fails."""
        try:
            return await with_retry(operation, description=f"{description} ({request.request_id})")
        except StoreError as exc:
            await self._fail_on_store_error(request, exc)
            raise MatchingFailedError(request.request_id, f"{description} failed: {exc}") from exc

    async def _commit(self, request: DeliveryRequest, operations: List[BatchOperation], description: str) -> None:
        await self._guarded(request, lambda: self.store.atomic_batch(operations), description)

    async def _fail_on_store_error(self, request: DeliveryRequest, exc: Exception) -> None:
        self._clear_window(request.request_id)
        request.status = RequestStatus.FAILED
        request.failure_reason = "store_unavailable"
        request.updated_at = self.clock()
        try:
            await self.store.update(REQUESTS_COLLECTION, request.request_id, self._request_write(request).data)
        except StoreError as update_exc:
            logger.error(f"Could not record failure of request {request.request_id}: {update_exc}")
        self._notify(events.REQUEST_FAILED, request.requester_id, request)
        logger.error(f"Request {request.request_id} failed on store error: {exc}")

    async def _load_request(self, request_id: str) -> DeliveryRequest:
        document = await with_retry(
            lambda: self.store.get(REQUESTS_COLLECTION, request_id),
            description=f"load request {request_id}",
        )
        if document is None:
            raise BusinessRuleError("request_not_found", "요청을 찾을 수 없습니다.")
        return DeliveryRequest.from_document(document.id, document.data)

    async def _load_match(self, match_id: str, carrier_id: str) -> Match:
        document = await with_retry(
            lambda: self.store.get(MATCHES_COLLECTION, match_id),
            description=f"load match {match_id}",
        )
        if document is None:
            raise BusinessRuleError("match_not_found", "매칭을 찾을 수 없습니다.")
        match = Match.from_document(document.id, document.data)
        if match.carrier_id != carrier_id:
            raise BusinessRuleError("not_match_carrier", "본인에게 제안된 매칭이 아닙니다.")
        return match

    async def _match_history(self, request_id: str) -> List[Match]:
        documents = await self.store.query(MATCHES_COLLECTION, [where("request_id", "==", request_id)])
        matches = [Match.from_document(doc.id, doc.data) for doc in documents]
        return sorted(matches, key=lambda m: (m.attempt, to_iso(m.created_at) or ""))

    async def _pending_matches(self, request: DeliveryRequest) -> List[Match]:
        documents = await self._guarded(
            request,
            lambda: self.store.query(
                MATCHES_COLLECTION,
                [where("request_id", "==", request.request_id), where("status", "==", MatchStatus.PENDING.value)],
            ),
            "load pending matches",
        )
        return [Match.from_document(doc.id, doc.data) for doc in documents]

    @staticmethod
    def _request_write(request: DeliveryRequest) -> BatchOperation:
        return BatchOperation(kind="update", collection=REQUESTS_COLLECTION, doc_id=request.request_id, data=request.to_document())

    @staticmethod
    def _match_write(match: Match) -> BatchOperation:
        return BatchOperation(kind="update", collection=MATCHES_COLLECTION, doc_id=match.match_id, data=match.to_document())

    def _notify(
        self,
        event_type: str,
        recipient_id: str,
        request: DeliveryRequest,
        match: Optional[Match] = None,
    ) -> None:
        event = NotificationEvent(
            event_type=event_type,
            recipient_id=recipient_id,
            request_id=request.request_id,
            match_id=match.match_id if match else None,
            payload={"status": request.status.value, "retry_count": request.retry_count},
        )
        try:
            self.notifier.emit(event)
        except Exception:
            logger.exception(f"Notification sink failed for {event_type}")

