"""
Scheduled background tasks for Hall Pass Hub.

Hall passes do not carry over between days. PassResetScheduler returns every
pass still OUT at local midnight, school by school, then schedules itself
again for the following midnight.
"""

import logging
from datetime import datetime, time, timedelta, timezone

from apscheduler.jobstores.base import JobLookupError

from hallpass.utils.helpers import get_timezone

logger = logging.getLogger('scheduled_tasks')

RESET_JOB_ID = 'daily_pass_reset'


def next_local_midnight(tz, now=None):
    """
    The next 00:00 in tz strictly after now, as an aware datetime.

    Each midnight is localized on its own, so days that are 23 or 25 hours
    long around DST changes come out right.
    """
    now = now or datetime.now(timezone.utc)
    local_now = now.astimezone(tz)
    next_date = local_now.date() + timedelta(days=1)
    return tz.normalize(tz.localize(datetime.combine(next_date, time.min)))


class PassResetScheduler:
    """
    Owns the nightly reset job on an APScheduler scheduler.

    The job is a one-shot 'date' trigger for the next midnight; every run
    schedules the next one, whether or not the reset succeeded.
    """

    def __init__(self, app, scheduler, timezone_name=None):
        self.app = app
        self.scheduler = scheduler
        self.tz = get_timezone(timezone_name or app.config.get('PASS_RESET_TIMEZONE'))
        self.job = None
        self.next_reset_at = None
        self.last_run = None

    def start(self):
        self.schedule_next_reset()
        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(f"Pass reset scheduler started ({self.tz.zone})")

    def shutdown(self):
        if self.job is not None:
            try:
                self.job.remove()
            except JobLookupError:
                logger.debug("Pass reset job already removed")
        self.job = None
        self.next_reset_at = None

    def schedule_next_reset(self, now=None):
        run_at = next_local_midnight(self.tz, now)
        # One id per night: the finished one-shot job is removed by the
        # scheduler after it runs and must not take the new one with it
        self.job = self.scheduler.add_job(
            func=self.run_scheduled_reset,
            trigger="date",
            run_date=run_at,
            id=f"{RESET_JOB_ID}:{run_at:%Y-%m-%d}",
            name='Return all active passes at midnight',
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            # A late run still fires, or the chain of one-shot jobs would end
            misfire_grace_time=None,
        )
        self.next_reset_at = run_at
        remaining = self.time_until_next_reset(now)
        logger.info(
            f"Scheduling next pass reset for {run_at.isoformat()} "
            f"(in {remaining['hours']}h {remaining['minutes']}m)"
        )
        return run_at

    def run_scheduled_reset(self, now=None):
        """Job body: reset all schools, then always queue the next midnight."""
        try:
            with self.app.app_context():
                self.run_daily_reset(now=now)
        except Exception as e:
            logger.error(f"Daily pass reset failed: {e}", exc_info=True)
        finally:
            self.schedule_next_reset(now)

    def run_daily_reset(self, now=None):
        """
        Return every OUT pass in every school.

        A failure in one school is logged and rolled back; the remaining
        schools are still processed.
        """
        # Imported here to avoid circular imports
        from hallpass.extensions import db
        from hallpass.utils.pass_service import list_school_ids, return_all_active_passes

        logger.info("Starting daily pass reset")
        now = now or datetime.now(timezone.utc)

        total_returned = 0
        failed_schools = []
        for school_id in list_school_ids():
            try:
                returned = return_all_active_passes(school_id, now=now)
            except Exception as e:
                db.session.rollback()
                failed_schools.append(school_id)
                logger.error(f"Daily reset failed for school {school_id}: {e}", exc_info=True)
                continue

            total_returned += returned
            if returned:
                logger.info(f"Daily reset: returned {returned} active passes for school {school_id}")

        self.last_run = {
            "ran_at": now,
            "returned": total_returned,
            "failed_schools": failed_schools,
        }
        logger.info(
            f"Daily reset completed. Total passes returned: {total_returned}, "
            f"failed schools: {len(failed_schools)}"
        )
        return {"returned": total_returned, "failed_schools": failed_schools}

    def manual_reset(self, school_id):
        """Run one school's share of the nightly reset right now."""
        from hallpass.utils.pass_service import return_all_active_passes

        logger.info(f"Manual pass reset initiated for school {school_id}")
        returned = return_all_active_passes(school_id)
        logger.info(f"Manual reset completed. Returned {returned} passes for school {school_id}")
        return returned

    def time_until_next_reset(self, now=None):
        """Hours and minutes until the next reset, for status display only."""
        now = now or datetime.now(timezone.utc)
        target = self.next_reset_at
        if target is None or target <= now:
            target = next_local_midnight(self.tz, now)
        remaining = int((target - now).total_seconds())
        return {"hours": remaining // 3600, "minutes": (remaining % 3600) // 60}


def init_scheduled_tasks(app):
    """
    Initialize and start scheduled tasks.

    Args:
        app: Flask application instance
    """
    from hallpass.extensions import scheduler

    reset_scheduler = PassResetScheduler(app, scheduler)
    reset_scheduler.start()
    app.extensions['pass_reset_scheduler'] = reset_scheduler
    return reset_scheduler


def get_reset_scheduler(app):
    """The app's PassResetScheduler, or an unstarted one when none is running."""
    reset_scheduler = app.extensions.get('pass_reset_scheduler')
    if reset_scheduler is None:
        from hallpass.extensions import scheduler
        reset_scheduler = PassResetScheduler(app, scheduler)
    return reset_scheduler
