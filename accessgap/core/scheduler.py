"""Interval scheduler for scans, due remediations and reminders."""

import re
import signal
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from accessgap.core.actions import FullBundle
from accessgap.core.models import Case, CaseStatus, EngineSettings
from accessgap.core.reconciliation import ReconciliationEngine
from accessgap.integrations.email import EmailAlerter, FindingAlert

logger = structlog.get_logger(__name__)

INTERVAL_LABELS: Dict[str, timedelta] = {
    "Every 5 Minutes": timedelta(minutes=5),
    "Every 15 Minutes": timedelta(minutes=15),
    "Every 30 Minutes": timedelta(minutes=30),
    "Every Hour": timedelta(hours=1),
    "Every 6 Hours": timedelta(hours=6),
    "Daily": timedelta(days=1),
}

_ALIASES = {"hourly": timedelta(hours=1), "daily": timedelta(days=1)}
_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days"}

TASK_ORDER = ("background_scan", "remediation_check", "daily_scan", "notifications")

DAILY = timedelta(days=1)
TICK_SECONDS = 60


def parse_interval(value: str) -> timedelta:
    """Parse an interval label ("Every 6 Hours") or shorthand ("6h", "daily").

    Raises:
        ValueError: If the expression is not recognised
    """
    if value in INTERVAL_LABELS:
        return INTERVAL_LABELS[value]

    text = str(value).strip().lower()
    if text in _ALIASES:
        return _ALIASES[text]
    for label, interval in INTERVAL_LABELS.items():
        if label.lower() == text:
            return interval

    match = re.fullmatch(r"(\d+)\s*([smhd])", text)
    if not match or int(match.group(1)) <= 0:
        raise ValueError(f"Invalid interval: {value}")
    return timedelta(**{_UNITS[match.group(2)]: int(match.group(1))})


class SchedulerState:
    """Last-run timestamps per task.

    Assumes a single scheduler writes it; running several scheduler
    processes needs external coordination.
    """

    def __init__(self):
        self.last_run: Dict[str, datetime] = {}

    def get(self, task: str) -> Optional[datetime]:
        return self.last_run.get(task)

    def mark(self, task: str, when: datetime) -> None:
        self.last_run[task] = when

    def reset(self) -> None:
        self.last_run.clear()


class ReconciliationScheduler:
    """Fires engine operations on independent intervals.

    Tasks run in the fixed order of TASK_ORDER on every tick. A task is due
    when its interval has elapsed since its last run; the last-run time is
    recorded before the task body executes.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        state: Optional[SchedulerState] = None,
        alerter: Optional[EmailAlerter] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.engine = engine
        self.state = state if state is not None else SchedulerState()
        self.alerter = alerter if alerter is not None else engine.alerter
        self.clock = clock or engine.clock
        self.scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 30},
        )

    def should_run(self, task: str, interval: timedelta) -> bool:
        now = self.clock()
        last = self.state.get(task)
        if last is None or now - last >= interval:
            self.state.mark(task, now)
            return True
        return False

    @staticmethod
    def _interval(value: str, default: str) -> timedelta:
        try:
            return parse_interval(value)
        except ValueError:
            logger.warning("invalid_interval_setting", value=value, default=default)
            return parse_interval(default)

    # Tasks

    def run_background_scan(self, settings: EngineSettings) -> bool:
        if not settings.background_scan_enabled:
            return False
        if not self.should_run("background_scan", self._interval(settings.background_scan_interval, "Every Hour")):
            return False

        logger.info("background_scan_started")
        try:
            summary = self.engine.system_scan()
            logger.info(
                "background_scan_complete",
                scanned=summary.scanned,
                new_findings=summary.total_new_findings,
                error=summary.error,
            )
        except Exception as e:
            logger.error("background_scan_failed", error=str(e))
        return True

    def run_remediation_check(self, settings: EngineSettings) -> bool:
        interval = self._interval(settings.remediation_check_interval, "Every 5 Minutes")
        if not self.should_run("remediation_check", interval):
            return False

        now = self.clock()
        try:
            cases = self.engine.store.list_cases(status=CaseStatus.SCHEDULED)
        except Exception as e:
            logger.error("remediation_check_failed", error=str(e))
            return True

        due = [c for c in cases if c.scheduled_remediation_date and _aware(c.scheduled_remediation_date) <= now]
        logger.info("remediation_check_started", scheduled=len(cases), due=len(due))

        for case in due:
            try:
                result = self.engine.execute_remediation(case.id, FullBundle())
                logger.info(
                    "scheduled_remediation_executed",
                    case_id=case.id,
                    success=result.success,
                    status=result.status.value,
                )
            except Exception as e:
                logger.error("scheduled_remediation_failed", case_id=case.id, error=str(e))
        return True

    def run_daily_scan(self) -> bool:
        if not self.should_run("daily_scan", DAILY):
            return False

        try:
            cases = [
                c for c in self.engine.store.list_cases()
                if c.status in (CaseStatus.DRAFT, CaseStatus.SCHEDULED)
            ]
        except Exception as e:
            logger.error("daily_scan_failed", error=str(e))
            return True

        for case in cases:
            try:
                self.engine.trigger_scan(case.id)
            except Exception as e:
                logger.error("daily_scan_case_failed", case_id=case.id, error=str(e))

        logger.info("daily_scan_complete", cases=len(cases))
        return True

    def run_notifications(self, settings: EngineSettings) -> bool:
        if not self.should_run("notifications", DAILY):
            return False
        if not (settings.notify_on_new_findings or settings.notify_on_remediation):
            return True

        now = self.clock()
        try:
            cases = self.engine.store.list_cases(status=CaseStatus.SCHEDULED)
        except Exception as e:
            logger.error("notifications_failed", error=str(e))
            return True

        for case in cases:
            if case.scheduled_remediation_date is None:
                continue
            days_until = (_aware(case.scheduled_remediation_date) - now).total_seconds() / 86400

            try:
                if 0 < days_until <= 1 and not case.notify_1d_sent:
                    if self._remind(case, settings, "1d"):
                        self.engine.store.update_case(case.id, notify_1d_sent=True, notify_1w_sent=True)
                elif 0 < days_until <= 7 and not case.notify_1w_sent and not case.notify_1d_sent:
                    if self._remind(case, settings, "7d"):
                        self.engine.store.update_case(case.id, notify_1w_sent=True)
            except Exception as e:
                logger.error("reminder_failed", case_id=case.id, error=str(e))
        return True

    def _remind(self, case: Case, settings: EngineSettings, window: str) -> bool:
        if self.alerter is None or not settings.notification_email:
            logger.info("reminder_not_sent", case_id=case.id, window=window, reason="no_recipient")
            return False

        who = f"{case.subject_name} ({case.subject_email})" if case.subject_name else case.subject_email
        if window == "1d":
            severity, when = "Critical", "due tomorrow!"
        else:
            severity, when = "High", "due in 7 days."

        sent = self.alerter.send_alert(
            FindingAlert(
                finding_name=f"{case.id}-{window}-reminder",
                severity=severity,
                finding_type="ScheduledRemediation",
                summary=f"Scheduled remediation for {who} is {when}",
                case_name=case.id,
                subject_email=case.subject_email,
            ),
            settings.notification_email,
        )
        logger.info("reminder_processed", case_id=case.id, window=window, sent=sent)
        return sent

    # Driving

    def tick(self) -> Dict[str, bool]:
        """Evaluate all four tasks once, in order."""
        try:
            settings = self.engine.settings
        except Exception as e:
            logger.error("scheduler_settings_unavailable", error=str(e))
            return {task: False for task in TASK_ORDER}

        ran = {
            "background_scan": self.run_background_scan(settings),
            "remediation_check": self.run_remediation_check(settings),
            "daily_scan": self.run_daily_scan(),
            "notifications": self.run_notifications(settings),
        }
        logger.debug("scheduler_tick", **ran)
        return ran

    def run_once(self) -> Dict[str, bool]:
        """Reset all last-run times and run every task once."""
        self.state.reset()
        logger.info("scheduler_run_once", tasks=list(TASK_ORDER))
        return self.tick()

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.add_job(
                func=self.tick,
                trigger=IntervalTrigger(seconds=TICK_SECONDS, timezone="UTC"),
                id="reconciliation_tick",
                name="reconciliation tick",
                next_run_time=datetime.now(timezone.utc),
                replace_existing=True,
            )
            self.scheduler.start()
            logger.info("scheduler_started", tasks=list(TASK_ORDER), tick_seconds=TICK_SECONDS)

            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
            logger.info("scheduler_stopped")

    def run_forever(self) -> None:
        """Start the tick job and block until interrupted."""
        self.start()
        logger.info("scheduler_running", message="Press Ctrl+C to exit")

        try:
            while True:
                time.sleep(1)
        except (KeyboardInterrupt, SystemExit):
            logger.info("scheduler_interrupted")
            self.stop()

    def _signal_handler(self, signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        self.stop()
        sys.exit(0)

    def status(self) -> List[Dict[str, Optional[str]]]:
        return [
            {"task": task, "last_run": self.state.get(task).isoformat() if self.state.get(task) else None}
            for task in TASK_ORDER
        ]


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
