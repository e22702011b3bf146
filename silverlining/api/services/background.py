from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from silverlining.api.schemas.common import LogCategory, LogLevel, NotificationType, TransactionStatus, utc_now
from silverlining.api.services import log_service, notifications_service
from silverlining.api.services.errors import NotFoundError
from silverlining.api.state import AppState

logger = logging.getLogger(__name__)

JobResult = Dict[str, Any]

HEALTH_ERROR_WINDOW = timedelta(minutes=5)
LOGIN_WINDOW = timedelta(minutes=10)
TRANSACTION_WINDOW = timedelta(minutes=15)


async def _run_in_thread(func, *args, **kwargs):
    """Run blocking pymongo calls in a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)


# PUBLIC_INTERFACE
def notification_cleanup_tick(state: AppState) -> JobResult:
    """Delete read notifications past the retention window."""
    deleted = notifications_service.delete_old_notifications(state, state.config.notification_retention_days)
    return {"deleted": deleted}


# PUBLIC_INTERFACE
def log_cleanup_tick(state: AppState) -> JobResult:
    """Delete non-AUDIT log entries past the retention window."""
    deleted = log_service.cleanup_old_logs(state, state.config.log_retention_days)
    return {"deleted": deleted}


# PUBLIC_INTERFACE
def system_health_tick(state: AppState) -> JobResult:
    """
    Ping the database and watch the recent error rate.

    More ERROR entries in the last five minutes than ``error_rate_threshold`` raises a WARNING
    system notification. Any failure raises an ERROR system notification and is re-raised.
    """
    try:
        if not state.mongo.ping():
            raise RuntimeError("Database ping failed")
        since = utc_now() - HEALTH_ERROR_WINDOW
        recent_errors = int(
            state.mongo.collections().logs.count_documents(
                {"level": LogLevel.ERROR.value, "timestamp": {"$gte": since}}
            )
        )
        if recent_errors > state.config.error_rate_threshold:
            notifications_service.create_system_notification(
                state,
                "High Error Rate Detected",
                f"System has generated {recent_errors} errors in the last 5 minutes. Please check system logs.",
                NotificationType.WARNING,
            )
        log_service.log_system_event(
            state,
            "HEALTH_CHECK",
            "System health check completed",
            {"recentErrors": recent_errors, "timestamp": utc_now().isoformat()},
        )
        return {"recentErrors": recent_errors}
    except Exception:
        try:
            notifications_service.create_system_notification(
                state,
                "System Health Check Failed",
                "System health monitoring service encountered an error.",
                NotificationType.ERROR,
            )
        except Exception:
            logger.exception("Could not send health check failure notification")
        raise


# PUBLIC_INTERFACE
def user_activity_tick(state: AppState) -> JobResult:
    """Flag IPs with bursts of logins and alert admins on a high failed-login count."""
    cols = state.mongo.collections()
    since = utc_now() - LOGIN_WINDOW

    by_ip: Counter = Counter(
        d.get("ipAddress") or "unknown"
        for d in cols.logs.find(
            {"category": LogCategory.AUTH.value, "action": "LOGIN", "timestamp": {"$gte": since}},
            projection={"_id": 0, "ipAddress": 1},
        )
    )
    suspicious: List[str] = []
    for ip, count in by_ip.items():
        if count > state.config.login_per_ip_threshold:
            suspicious.append(ip)
            log_service.log_security_event(
                state,
                "SUSPICIOUS_LOGIN_PATTERN",
                f"Multiple login attempts detected from IP: {ip}",
                {"loginCount": count},
                ip_address=ip,
            )

    failed = int(
        cols.logs.count_documents(
            {"category": LogCategory.AUTH.value, "action": "LOGIN_FAILED", "timestamp": {"$gte": since}}
        )
    )
    if failed > state.config.failed_login_threshold:
        notifications_service.create_system_notification(
            state,
            "High Failed Login Rate",
            f"System detected {failed} failed login attempts in the last 10 minutes.",
            NotificationType.WARNING,
        )
    return {"suspiciousIps": suspicious, "failedLogins": failed}


# PUBLIC_INTERFACE
def transaction_monitor_tick(state: AppState) -> JobResult:
    """Watch failure rate, large completed transactions and stale pending ones."""
    cfg = state.config
    cols = state.mongo.collections()
    now = utc_now()
    since = now - TRANSACTION_WINDOW

    failed = int(
        cols.transactions.count_documents({"status": TransactionStatus.FAILED.value, "updatedAt": {"$gte": since}})
    )
    if failed > cfg.failed_transaction_threshold:
        notifications_service.create_system_notification(
            state,
            "High Transaction Failure Rate",
            f"System detected {failed} failed transactions in the last 15 minutes.",
            NotificationType.WARNING,
        )

    large = list(
        cols.transactions.find(
            {
                "status": TransactionStatus.COMPLETED.value,
                "amount": {"$gte": cfg.large_transaction_amount},
                "updatedAt": {"$gte": since},
            },
            projection={"_id": 0},
        )
    )
    emails: Dict[str, Any] = {}
    if large:
        owners = sorted({t["userId"] for t in large})
        for d in cols.users.find({"id": {"$in": owners}}, projection={"_id": 0, "id": 1, "email": 1}):
            emails[d["id"]] = d.get("email")
    for t in large:
        log_service.log_transaction(
            state,
            t["id"],
            "LARGE_TRANSACTION_COMPLETED",
            f"Large transaction completed: {float(t.get('amount') or 0.0):,.2f}",
            {"amount": t.get("amount"), "type": t.get("type"), "referenceId": t.get("referenceId")},
            user_id=t.get("userId"),
            user_email=emails.get(t.get("userId")),
        )

    stale = int(
        cols.transactions.count_documents(
            {
                "status": TransactionStatus.PENDING.value,
                "createdAt": {"$lt": now - timedelta(hours=cfg.pending_transaction_max_age_hours)},
            }
        )
    )
    if stale > 0:
        notifications_service.create_system_notification(
            state,
            "Old Pending Transactions",
            f"System has {stale} transactions pending for more than {cfg.pending_transaction_max_age_hours} hours.",
            NotificationType.WARNING,
        )
    return {"failed": failed, "largeCompleted": len(large), "stalePending": stale}


@dataclass
class Job:
    name: str
    interval_sec: int
    tick: Callable[[AppState], JobResult]
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    last_result: Optional[JobResult] = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def as_status(self) -> Dict[str, Any]:
        return {
            "intervalSec": self.interval_sec,
            "running": self.task is not None and not self.task.done(),
            "lastRun": self.last_run.isoformat() if self.last_run else None,
            "lastError": self.last_error,
            "lastResult": self.last_result,
        }


def build_jobs(state: AppState) -> Dict[str, Job]:
    cfg = state.config
    jobs = [
        Job("notification_cleanup", cfg.notification_cleanup_interval_sec, notification_cleanup_tick),
        Job("log_cleanup", cfg.log_cleanup_interval_sec, log_cleanup_tick),
        Job("system_health", cfg.health_check_interval_sec, system_health_tick),
        Job("user_activity", cfg.user_activity_interval_sec, user_activity_tick),
        Job("transaction_monitor", cfg.transaction_monitor_interval_sec, transaction_monitor_tick),
    ]
    return {j.name: j for j in jobs}


class BackgroundService:
    """
    Periodic maintenance and monitoring jobs.

    Each job runs in its own asyncio task; ticks are blocking pymongo work and run in a worker
    thread. A job first fires one interval after ``start()``. A failing tick is logged and
    recorded on the job, and the loop carries on.
    """

    def __init__(self, state: AppState):
        self._state = state
        self.jobs: Dict[str, Job] = build_jobs(state)
        self._shutdown: Optional[asyncio.Event] = None

    def is_running(self) -> bool:
        return any(j.task is not None and not j.task.done() for j in self.jobs.values())

    async def _execute(self, job: Job) -> JobResult:
        started = datetime.now(timezone.utc)
        try:
            result = await _run_in_thread(job.tick, self._state)
        except Exception as e:
            job.last_run = started
            job.last_error = f"{type(e).__name__}: {e}"
            raise
        job.last_run = started
        job.last_error = None
        job.last_result = result
        logger.info("Background job %s completed: %s", job.name, result)
        return result

    async def _job_loop(self, job: Job, shutdown_event: asyncio.Event) -> None:
        interval = max(1, int(job.interval_sec))
        logger.info("Background job %s started (interval=%ss)", job.name, interval)
        sleep_for = float(interval)

        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=sleep_for)
                break
            except asyncio.TimeoutError:
                pass

            tick_started = datetime.now(timezone.utc)
            try:
                await self._execute(job)
            except Exception:
                logger.exception("Background job %s tick failed", job.name)

            elapsed = (datetime.now(timezone.utc) - tick_started).total_seconds()
            sleep_for = max(0.1, interval - elapsed)

        logger.info("Background job %s stopped", job.name)

    # PUBLIC_INTERFACE
    def start(self) -> None:
        """Start every job loop. Calling it again while running is a no-op."""
        if self.is_running():
            return
        logger.info("Starting background services...")
        self._shutdown = asyncio.Event()
        for job in self.jobs.values():
            job.task = asyncio.create_task(self._job_loop(job, self._shutdown))
        logger.info("Background services started (%d jobs)", len(self.jobs))

    # PUBLIC_INTERFACE
    async def stop(self, timeout: float = 5.0) -> None:
        """Signal every loop and wait for it to exit."""
        if self._shutdown is None:
            return
        logger.info("Stopping background services...")
        self._shutdown.set()
        for job in self.jobs.values():
            if job.task is None:
                continue
            try:
                await asyncio.wait_for(job.task, timeout=timeout)
            except Exception:
                logger.exception("Error stopping background job %s", job.name)
            job.task = None
        self._shutdown = None
        logger.info("Background services stopped")

    # PUBLIC_INTERFACE
    def status(self) -> Dict[str, Any]:
        active = sum(1 for j in self.jobs.values() if j.task is not None and not j.task.done())
        return {
            "running": active > 0,
            "activeIntervals": active,
            "jobs": {name: job.as_status() for name, job in self.jobs.items()},
        }

    # PUBLIC_INTERFACE
    async def run_job(self, name: str) -> JobResult:
        """Run one job now. Raises NotFoundError for an unknown name; tick errors propagate."""
        job = self.jobs.get(name)
        if job is None:
            raise NotFoundError(f"Unknown background job: {name}")
        logger.info("Manual run of background job %s", name)
        return await self._execute(job)
