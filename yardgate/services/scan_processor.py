# yardgate/services/scan_processor.py
"""
Scan Reconciliation Engine — the periodic pass over unprocessed RFID scans.

One run:
  1. claim   — stamp a run token on unclaimed pending scans (one conditional
               UPDATE, committed) and work only on rows carrying that token
  2. group   — Session Builder
  3. apply   — per session, one unit of work: resolve identity → classify
               Entry/Exit → custody ledger → kit reconciliation → case manager
               → alerts, with the session's scans marked processed in the same
               transaction
  4. sweep   — Late-Return Monitor
  5. beat    — heartbeat row for external monitoring

A session that fails (no severity tier for its cost, persistent write
conflicts) is rolled back and its claim released, so its scans are picked up
again next run instead of being half applied. The truck's later sessions in the
same run are held back and released too. A broken severity table aborts
the whole run before anything is applied.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Set, Tuple

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from yardgate.config import settings
from yardgate.database import SessionLocal
from yardgate.models.alert_rules import AlertRules
from yardgate.models.gate_crossing import Direction
from yardgate.models.processor_heartbeat import ProcessorHeartbeat
from yardgate.models.rfid_scan import RfidScan
from yardgate.services.alert_service import emit_system_alert, get_alert_rules
from yardgate.services.assignment_service import apply_custody
from yardgate.services.case_service import apply_entry_scan, apply_exit_scan
from yardgate.services.errors import (
    ConcurrencyConflictError, ScanProcessingError, SeverityConfigError, SeverityNotFoundError,
)
from yardgate.services.gate_event_service import record_gate_crossing
from yardgate.services.identity_resolver import resolve_session
from yardgate.services.kit_reconciliation import reconcile_exit
from yardgate.services.late_return_service import sweep_late_returns
from yardgate.services.session_builder import ScanSession, build_sessions
from yardgate.services.severity_service import SeverityTable, load_severity_table
from yardgate.services.unit_of_work import commit_with_retry
from yardgate.utils.clock import utcnow
from yardgate.utils.logger import get_logger

logger = get_logger(__name__)

HEARTBEAT_NAME = "scan-processor"

OUTCOME_CROSSING = "crossing"
OUTCOME_SKIPPED = "skipped"
OUTCOME_REJECTED = "rejected"
OUTCOME_HELD_BACK = "held_back"


@dataclass
class RunContext:
    now: datetime
    rules: AlertRules
    severity_table: SeverityTable
    session_window: timedelta
    duplicate_window: timedelta
    # Trucks with a deferred session; their later sessions wait for the next run
    deferred_trucks: Set[int] = field(default_factory=set)


@dataclass
class RunSummary:
    started_at: datetime
    claimed: int = 0
    sessions: int = 0
    crossings: int = 0
    skipped: int = 0
    rejected: int = 0
    held_back: int = 0
    late_alerts: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "partial" if self.failures else "ok"


# ── Claim bookkeeping ─────────────────────────────────────────────────────────

def claim_pending_scans(db: Session, now: datetime, lookback: timedelta,
                        lease: timedelta) -> Tuple[str, List[RfidScan]]:
    """Atomically claim unprocessed scans in the lookback window. Returns (token, scans)."""
    token = uuid.uuid4().hex
    stmt = (
        update(RfidScan)
        .where(
            RfidScan.processed_at.is_(None),
            RfidScan.observed_at >= now - lookback,
            or_(RfidScan.claim_token.is_(None), RfidScan.claimed_at < now - lease),
        )
        .values(claim_token=token, claimed_at=now)
        .execution_options(synchronize_session=False)
    )
    db.execute(stmt)
    db.commit()

    scans = (
        db.query(RfidScan)
        .filter(RfidScan.claim_token == token)
        .order_by(RfidScan.reader_id, RfidScan.observed_at, RfidScan.id)
        .all()
    )
    return token, scans


def release_claim(db: Session, token: str, scan_ids: List[int] = None) -> None:
    """Hand unprocessed scans back to the queue (all of the run's, or just `scan_ids`)."""
    stmt = update(RfidScan).where(RfidScan.claim_token == token, RfidScan.processed_at.is_(None))
    if scan_ids is not None:
        stmt = stmt.where(RfidScan.id.in_(scan_ids))
    db.execute(stmt.values(claim_token=None, claimed_at=None).execution_options(synchronize_session=False))
    db.commit()


def record_heartbeat(db: Session, summary: RunSummary, status: str, message: str = None) -> None:
    beat = db.get(ProcessorHeartbeat, HEARTBEAT_NAME)
    if beat is None:
        beat = ProcessorHeartbeat(name=HEARTBEAT_NAME)
        db.add(beat)
    beat.last_run_at = summary.started_at
    beat.last_status = status
    beat.sessions_seen = summary.sessions
    beat.crossings_created = summary.crossings
    beat.failures = len(summary.failures)
    beat.message = message or ("; ".join(summary.failures) if summary.failures else None)
    db.commit()


# ── Per-session unit of work ──────────────────────────────────────────────────

async def process_session(db: Session, session: ScanSession, ctx: RunContext) -> str:
    """
    Apply one session as a single transaction. Returns crossing | skipped |
    rejected | held_back. A session whose truck already has a deferred session
    in this run is held back untouched, so the truck's events stay in order.
    """
    scan_ids = session.scan_ids
    attempted = {}

    def mark_processed():
        for scan in db.query(RfidScan).filter(RfidScan.id.in_(scan_ids)).all():
            scan.processed_at = ctx.now

    async def work(db: Session) -> str:
        resolved = resolve_session(db, session)
        if resolved is None:
            mark_processed()
            return OUTCOME_SKIPPED

        if resolved.truck_id in ctx.deferred_trucks:
            return OUTCOME_HELD_BACK
        attempted["truck_id"] = resolved.truck_id

        verdict = record_gate_crossing(db, resolved, ctx.duplicate_window)
        if not verdict.accepted:
            mark_processed()
            return OUTCOME_REJECTED

        apply_custody(db, resolved.truck_id, resolved.site_id, verdict.direction,
                      resolved.equipment, resolved.event_time)

        if verdict.direction == Direction.EXIT:
            kit = reconcile_exit(db, resolved)
            await apply_exit_scan(db, resolved, kit.missing, ctx.severity_table, ctx.rules)
        else:
            await apply_entry_scan(db, resolved, ctx.severity_table)

        mark_processed()
        return OUTCOME_CROSSING

    try:
        return await commit_with_retry(db, work, label=f"session {session.key()}")
    except ScanProcessingError as e:
        e.truck_id = attempted.get("truck_id")
        raise


# ── Run ───────────────────────────────────────────────────────────────────────

async def run_scan_processor(db: Session, now: datetime = None) -> RunSummary:
    """One full reconciliation pass. Raises on fatal configuration errors."""
    now = now or utcnow()
    summary = RunSummary(started_at=now)
    rules = get_alert_rules(db)

    token, scans = claim_pending_scans(
        db, now,
        lookback=timedelta(minutes=settings.SCAN_LOOKBACK_MINUTES),
        lease=timedelta(minutes=settings.CLAIM_LEASE_MINUTES),
    )
    summary.claimed = len(scans)

    try:
        if scans:
            await _apply_sessions(db, token, scans, rules, now, summary)

        async def sweep(db: Session):
            return await sweep_late_returns(db, rules, now)

        swept = await commit_with_retry(db, sweep, label="late-return sweep")
        summary.late_alerts = len(swept.alerted)
    except Exception as e:
        db.rollback()
        release_claim(db, token)
        summary.failures.append(str(e))
        record_heartbeat(db, summary, "failed", message=f"{type(e).__name__}: {e}")
        logger.error(f"[RUN] Scan processor run aborted: {e}", exc_info=True)
        raise

    record_heartbeat(db, summary, summary.status)
    logger.info(
        f"[RUN] claimed={summary.claimed} sessions={summary.sessions} crossings={summary.crossings} "
        f"skipped={summary.skipped} rejected={summary.rejected} held_back={summary.held_back} "
        f"late_alerts={summary.late_alerts} "
        f"failures={len(summary.failures)}"
    )
    return summary


async def _apply_sessions(db: Session, token: str, scans: List[RfidScan], rules: AlertRules,
                          now: datetime, summary: RunSummary) -> None:
    try:
        severity_table = load_severity_table(db)
    except SeverityConfigError as e:
        await emit_system_alert(db, "severity-table", f"Severity tier table rejected: {e}", rules)
        db.commit()
        raise

    ctx = RunContext(
        now=now,
        rules=rules,
        severity_table=severity_table,
        session_window=timedelta(seconds=settings.SESSION_WINDOW_SECONDS),
        duplicate_window=timedelta(minutes=settings.DUPLICATE_SUPPRESSION_MINUTES),
    )

    sessions = build_sessions(scans, ctx.session_window)
    summary.sessions = len(sessions)

    for session in sessions:
        try:
            outcome = await process_session(db, session, ctx)
        except SeverityNotFoundError as e:
            _defer(db, token, session, ctx, summary, e)
            await emit_system_alert(
                db, f"severity-gap:{e.total_cost}",
                f"No severity tier covers missing cost {e.total_cost}; "
                f"scans from reader {session.reader_id} deferred",
                rules,
            )
            db.commit()
            continue
        except ConcurrencyConflictError as e:
            _defer(db, token, session, ctx, summary, e)
            continue

        if outcome == OUTCOME_CROSSING:
            summary.crossings += 1
        elif outcome == OUTCOME_REJECTED:
            summary.rejected += 1
        elif outcome == OUTCOME_HELD_BACK:
            summary.held_back += 1
            logger.warning(f"[RUN] Session {session.key()} held back: its truck has a deferred session")
            release_claim(db, token, session.scan_ids)
        else:
            summary.skipped += 1


def _defer(db: Session, token: str, session: ScanSession, ctx: RunContext,
           summary: RunSummary, error: ScanProcessingError):
    logger.error(f"[RUN] Session {session.key()} deferred to next run: {error}")
    summary.failures.append(f"{session.key()}: {error}")
    if error.truck_id is not None:
        ctx.deferred_trucks.add(error.truck_id)
    release_claim(db, token, session.scan_ids)


async def start_scan_processing(interval_seconds: int = None):
    """
    Run the processor forever on a fixed interval. Called once at backend startup.
    A failed run is logged and the next tick tries again.
    """
    interval = interval_seconds or settings.SCAN_PROCESSOR_INTERVAL_SECONDS
    logger.info(f"🚀 Scan processor started (every {interval}s)")

    while True:
        db = SessionLocal()
        try:
            await run_scan_processor(db)
        except Exception as e:
            logger.error(f"❌ Scan processor run failed: {e}", exc_info=True)
        finally:
            db.close()
        await asyncio.sleep(interval)
