"""
In-process CRM scheduler.

A daemon thread ticks every SCHEDULER_TICK_SECONDS. On each tick every job is
checked independently: it runs when the current time falls inside its
activation window (and on the right weekday for weekly jobs) and its run
marker differs from the current period id. The marker is written only after
the job succeeds. Each job is attempted at most once per period by this
scheduler, so a failed job is retried in the next activation window rather
than on every tick of the current one.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from leadflow.config import (
    ACTIVATION_WINDOW_MINUTES,
    SCHEDULER_MARKER_BACKEND,
    SCHEDULER_TICK_SECONDS,
)
from leadflow.database import get_session
from leadflow.errors import ConfigurationError
from leadflow.models.crm_settings import CrmSettings
from leadflow.automation import jobs
from leadflow.automation.clock import (
    activation_window_minutes,
    day_of_week,
    in_activation_window,
    parse_time_of_day,
    period_id,
)
from leadflow.automation.round_robin import RoundRobinAllocator

logger = logging.getLogger('automation.scheduler')


@dataclass(frozen=True)
class JobSchedule:
    cadence: str                    # daily | weekly
    hour: int
    minute: int
    weekday: Optional[int] = None   # 0=Sunday, weekly only
    window_minutes: int = ACTIVATION_WINDOW_MINUTES


@dataclass(frozen=True)
class JobSpec:
    name: str
    func: Callable
    cadence: str


DAILY_JOBS = (
    JobSpec('overdue_actions', jobs.process_overdue_actions, 'daily'),
    JobSpec('cold_leads', jobs.process_cold_leads, 'daily'),
    JobSpec('escalation', jobs.process_escalations, 'daily'),
    JobSpec('proposal_reminder', jobs.process_proposal_reminders, 'daily'),
)

WEEKLY_JOBS = (
    JobSpec('weekly_report', jobs.process_weekly_report, 'weekly'),
)


def is_job_due(marker, now, schedule):
    """True when `now` is inside the job's window and it has not run this period."""
    if schedule.cadence == 'weekly' and day_of_week(now) != schedule.weekday:
        return False
    if not in_activation_window(now, schedule.hour, schedule.minute, schedule.window_minutes):
        return False
    return marker != period_id(schedule.cadence, now)


# ── Run marker stores ────────────────────────────────────────────────────────

class InMemoryRunMarkerStore:
    """Process-local markers; a restart may re-run a job inside its window."""

    def __init__(self):
        self._markers = {}
        self._lock = threading.Lock()

    def get(self, name):
        with self._lock:
            return self._markers.get(name)

    def set(self, name, value):
        with self._lock:
            self._markers[name] = value


class RedisRunMarkerStore:
    """Markers shared through Redis so they survive restarts."""

    # Longest period is a week
    TTL_SECONDS = 8 * 24 * 3600

    def __init__(self, redis, prefix='leadflow:scheduler:'):
        self.redis = redis
        self.prefix = prefix

    def get(self, name):
        return self.redis.get(self.prefix + name)

    def set(self, name, value):
        self.redis.set(self.prefix + name, value, ex=self.TTL_SECONDS)


def build_marker_store(backend=None):
    backend = backend or SCHEDULER_MARKER_BACKEND
    if backend == 'redis':
        from leadflow.extensions import redis_client
        return RedisRunMarkerStore(redis_client)
    if backend != 'memory':
        logger.warning("Unknown SCHEDULER_MARKER_BACKEND %r — using memory", backend)
    return InMemoryRunMarkerStore()


# ── Scheduler ────────────────────────────────────────────────────────────────

class Scheduler:
    """
    Evaluates and runs the periodic jobs.

    Args:
        jobs:            JobSpecs to evaluate (daily + weekly by default)
        markers:         run marker store
        clock:           zero-arg callable returning "now"
        tick_seconds:    interval between ticks of the background thread
        allocator:       shared RoundRobinAllocator (escalation reassignments)
        dispatch:        notification dispatcher (defaults to notifications.send)
        session_factory: returns a new DB session (defaults to get_session)
    """

    def __init__(self, jobs=None, markers=None, clock=None, tick_seconds=SCHEDULER_TICK_SECONDS,
                 allocator=None, dispatch=None, session_factory=None):
        self.jobs = tuple(jobs) if jobs is not None else DAILY_JOBS + WEEKLY_JOBS
        self.markers = markers if markers is not None else InMemoryRunMarkerStore()
        self.clock = clock or datetime.now
        self.tick_seconds = tick_seconds
        self.window_minutes = activation_window_minutes(tick_seconds, ACTIVATION_WINDOW_MINUTES)
        self.allocator = allocator if allocator is not None else RoundRobinAllocator()
        self.dispatch = dispatch
        self.session_factory = session_factory
        # job name -> period id of the last run started by this process
        self._attempted = {}
        self._stop = threading.Event()
        self._thread = None

    def schedule_for(self, job, settings):
        """Build the JobSchedule for `job` from the current settings. Raises ScheduleConfigError."""
        if job.cadence == 'weekly':
            hour, minute = parse_time_of_day(settings.weekly_report_time)
            return JobSchedule('weekly', hour, minute, settings.weekly_report_day, self.window_minutes)
        hour, minute = parse_time_of_day(settings.daily_overdue_email_time)
        return JobSchedule('daily', hour, minute, None, self.window_minutes)

    def tick(self, now=None):
        """
        Evaluate every job once.

        Returns:
            dict job name → job result (or {'error': ...}) for jobs that ran.
        """
        now = now or self.clock()
        session = (self.session_factory or get_session)()
        ran = {}
        try:
            settings = CrmSettings.get_settings(session)
            for job in self.jobs:
                outcome = self._run_if_due(job, session, settings, now)
                if outcome is not None:
                    ran[job.name] = outcome
        finally:
            session.close()
        return ran

    def _run_if_due(self, job, session, settings, now):
        try:
            schedule = self.schedule_for(job, settings)
        except ConfigurationError as e:
            logger.error("Cannot schedule job %s: %s", job.name, e, extra={'job': job.name})
            return None

        period = period_id(job.cadence, now)
        if self._attempted.get(job.name) == period:
            return None

        try:
            marker = self.markers.get(job.name)
        except Exception:
            logger.error("Cannot read run marker for job %s", job.name, exc_info=True, extra={'job': job.name})
            return None

        if not is_job_due(marker, now, schedule):
            return None

        logger.info("Running job %s", job.name, extra={'job': job.name})
        ctx = jobs.JobContext(
            session=session,
            settings=settings,
            now=now,
            allocator=self.allocator,
            dispatch=self.dispatch,
        )
        self._attempted[job.name] = period
        try:
            result = job.func(ctx)
        except Exception as e:
            session.rollback()
            logger.error("Job %s failed, retrying in the next window", job.name,
                         exc_info=True, extra={'job': job.name})
            return {'error': str(e)}

        try:
            self.markers.set(job.name, period)
        except Exception:
            logger.error("Cannot store run marker %s for job %s", period, job.name,
                         exc_info=True, extra={'job': job.name})
        return result

    # ── Background thread ────────────────────────────────────────────────

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start ticking in a daemon thread; the first tick happens immediately."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name='crm-scheduler', daemon=True)
        self._thread.start()
        logger.info("CRM scheduler started (tick every %ss, window %d min)",
                    self.tick_seconds, self.window_minutes)

    def stop(self, timeout=None):
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("CRM scheduler stopped")

    def _loop(self):
        while True:
            try:
                self.tick()
            except Exception:
                logger.error("Scheduler tick failed", exc_info=True)
            if self._stop.wait(self.tick_seconds):
                break
