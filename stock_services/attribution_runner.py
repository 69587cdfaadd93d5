"""
AttributionRunner -- drain the queue of unprocessed consumption events.

Contract:
    run() attributes pending events oldest event_date first, each in its
    own committed transaction, and returns an AttributionRunSummary.

Architecture: stock_services.  Composes AttributionService with the
    kernel's session_scope.

Invariants enforced:
    - One transaction per event: a failing event rolls back alone and the
      run continues with the next one.
    - Every failure is logged with its error code and reported in the
      summary; the event stays unprocessed for the next run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from stock_kernel.db.engine import session_scope
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.exceptions import StockLedgerError
from stock_kernel.logging_config import LogContext, get_logger
from stock_services.attribution_service import AttributionService

logger = get_logger("services.attribution_runner")


@dataclass(frozen=True)
class AttributionFailure:
    event_id: UUID
    error_code: str
    error_message: str


@dataclass(frozen=True)
class AttributionRunSummary:
    run_id: str
    events_processed: int = 0
    units_attributed: int = 0
    units_unattributed: int = 0
    total_cogs: Decimal = Decimal("0")
    failures: tuple[AttributionFailure, ...] = field(default_factory=tuple)
    duration_ms: int = 0

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "events_processed": self.events_processed,
            "units_attributed": self.units_attributed,
            "units_unattributed": self.units_unattributed,
            "total_cogs": str(self.total_cogs),
            "failed": self.failed_count,
            "failures": [
                {
                    "event_id": str(f.event_id),
                    "error_code": f.error_code,
                    "error_message": f.error_message,
                }
                for f in self.failures
            ],
            "duration_ms": self.duration_ms,
        }


class AttributionRunner:
    """Process pending consumption events in event-date order."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        batch_limit: int | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._batch_limit = batch_limit

    def run(self, limit: int | None = None) -> AttributionRunSummary:
        """
        Attribute up to ``limit`` pending events (default: the configured
        batch limit, or all of them).
        """
        run_id = uuid4().hex[:12]
        limit = limit if limit is not None else self._batch_limit
        started = time.monotonic()

        with session_scope(self._session_factory) as session:
            pending = AttributionService(session, self._clock).pending_event_ids(limit)

        logger.info("attribution_run_started", extra={"run_id": run_id, "pending": len(pending)})

        processed = 0
        attributed = 0
        unattributed = 0
        cogs = Decimal("0")
        failures: list[AttributionFailure] = []

        with LogContext.bind(run_id=run_id):
            for event_id in pending:
                try:
                    with session_scope(self._session_factory) as session:
                        result = AttributionService(session, self._clock).process_event(event_id)
                except StockLedgerError as exc:
                    logger.error(
                        "attribution_event_failed",
                        extra={
                            "event_id": str(event_id),
                            "error_code": exc.code,
                            "error_message": str(exc),
                        },
                    )
                    failures.append(AttributionFailure(event_id, exc.code, str(exc)))
                    continue

                if result.already_processed:
                    continue
                processed += 1
                attributed += result.attributed_quantity
                unattributed += result.unattributed_quantity
                cogs += result.total_cogs

        summary = AttributionRunSummary(
            run_id=run_id,
            events_processed=processed,
            units_attributed=attributed,
            units_unattributed=unattributed,
            total_cogs=cogs,
            failures=tuple(failures),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "attribution_run_completed",
            extra={
                "run_id": run_id,
                "events_processed": processed,
                "units_attributed": attributed,
                "units_unattributed": unattributed,
                "total_cogs": str(cogs),
                "failed": summary.failed_count,
            },
        )
        return summary
