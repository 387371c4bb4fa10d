"""
Book & Move Background Scheduler

Runs the reconciliation sweeps for job distribution:
- Dispatch paid jobs that have not been alerted, or whose alerts went stale
- Expire alerts nobody answered
- Re-dispatch or expire jobs whose assignment window lapsed
- Purge bookings whose deposit never arrived
- Hand long-distance bookings to the coordination team

Only starts when ENABLE_SCHEDULER=true to prevent running on multiple instances.
Each sweep runs in its own app context and its own try/except, so one failing
sweep never blocks the others.
"""

import logging
import time
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from flask import current_app
from sqlalchemy import or_, and_

from dispatch import dispatch_job
from errors import EngineError
from models import (
    db, Job, JobAlert, Notification, utcnow,
    ASSIGNABLE_JOB_STATUSES, OPEN_ASSIGNMENT_STATUSES,
)
from notifications import JobEvent, get_notifier, job_event_context

logger = logging.getLogger(__name__)


def _stats(found=0):
    return {"found": found, "processed": 0, "skipped": 0, "errors": 0, "started": time.monotonic()}


def _finish(name, stats):
    stats["duration_ms"] = int((time.monotonic() - stats.pop("started")) * 1000)
    if stats["found"] or stats["errors"]:
        logger.info(
            "Scheduler: %s found=%d processed=%d skipped=%d errors=%d (%dms)",
            name, stats["found"], stats["processed"], stats["skipped"],
            stats["errors"], stats["duration_ms"],
        )
    else:
        logger.debug("Scheduler: %s had nothing to do", name)
    return stats


# ---------------------------------------------------------------------------
# 1. New-dispatch sweep
# ---------------------------------------------------------------------------
def sweep_new_dispatches(notifier=None, now=None):
    """Dispatch paid future jobs that are unassigned or have stale alerts."""
    now = now or utcnow()
    stale_before = now - timedelta(hours=current_app.config.get("REALERT_AFTER_HOURS", 2))

    job_ids = [job_id for (job_id,) in db.session.query(Job.id).filter(
        Job.deposit_paid.is_(True),
        Job.payment_status == "deposit-paid",
        Job.move_date > now,
        Job.status.in_(ASSIGNABLE_JOB_STATUSES),
        Job.move_type != "long-distance",
        or_(
            and_(
                Job.assignment_status == "unassigned",
                or_(Job.last_dispatch_attempt_at.is_(None), Job.last_dispatch_attempt_at < stale_before),
            ),
            and_(
                Job.assignment_status == "alerted",
                or_(Job.last_alert_sent_at.is_(None), Job.last_alert_sent_at < stale_before),
            ),
        ),
    ).order_by(Job.created_at.asc()).all()]

    stats = _stats(len(job_ids))
    stats["alerts_sent"] = 0
    for job_id in job_ids:
        try:
            result = dispatch_job(job_id, notifier=notifier, now=now)
        except EngineError as e:
            db.session.rollback()
            stats["errors"] += 1
            logger.warning("Scheduler: dispatch of job %s rejected: %s", job_id, e.message)
            continue
        except Exception:
            db.session.rollback()
            stats["errors"] += 1
            logger.exception("Scheduler: dispatch of job %s failed", job_id)
            continue
        if result.skipped:
            stats["skipped"] += 1
        else:
            stats["processed"] += 1
            stats["alerts_sent"] += result.alerts_sent
    return _finish("new-dispatch sweep", stats)


# ---------------------------------------------------------------------------
# 2. Expired-alert sweep
# ---------------------------------------------------------------------------
def sweep_expired_alerts(now=None):
    """Move unanswered alerts past their expiry to ``expired``."""
    now = now or utcnow()
    stats = _stats()
    expired = JobAlert.query.filter(
        JobAlert.status == "sent",
        JobAlert.expires_at < now,
    ).update({
        JobAlert.status: "expired",
        JobAlert.updated_at: now,
    }, synchronize_session=False)
    db.session.commit()
    stats["found"] = stats["processed"] = expired
    return _finish("expired-alert sweep", stats)


# ---------------------------------------------------------------------------
# 3. Expired-assignment sweep
# ---------------------------------------------------------------------------
def _expire_unassigned_job(job, notifier, now):
    updated = Job.query.filter(
        Job.id == job.id,
        Job.assignment_status == "unassigned",
    ).update({
        Job.assignment_status: "expired",
        Job.updated_at: now,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        return False

    if job.customer_id:
        Notification.create_notification(
            recipient_id=job.customer_id,
            recipient_type="user",
            notification_type="system-alert",
            title="Job Assignment Expired",
            message=(
                "We couldn't find a mover for your job within the expected timeframe. "
                "Please try adjusting your requirements or contact support."
            ),
            related_id=job.id,
            priority="high",
        )
    db.session.commit()

    recipient = job.customer_email
    if recipient:
        try:
            notifier.notify(JobEvent(
                "job_expired",
                recipient,
                job_event_context(job, support_email=current_app.config.get("COORDINATION_TEAM_EMAIL")),
            ))
        except Exception:
            logger.exception("Scheduler: failed to send expiry email for job %s", job.id)
    return True


def sweep_expired_assignments(notifier=None, now=None):
    """Re-dispatch alerted jobs past their window; expire never-alerted ones.

    Long-distance bookings are coordinated by hand and never expire here.
    """
    now = now or utcnow()
    jobs = Job.query.filter(
        Job.assignment_expires_at < now,
        Job.assignment_status.in_(OPEN_ASSIGNMENT_STATUSES),
        Job.move_type != "long-distance",
    ).all()

    stats = _stats(len(jobs))
    notifier = notifier or get_notifier()
    for job in jobs:
        try:
            if job.assignment_status == "alerted":
                result = dispatch_job(job.id, notifier=notifier, now=now)
                if result.skipped:
                    stats["skipped"] += 1
                    continue
            elif not _expire_unassigned_job(job, notifier, now):
                stats["skipped"] += 1
                continue
            stats["processed"] += 1
        except EngineError as e:
            db.session.rollback()
            stats["errors"] += 1
            logger.warning("Scheduler: expired assignment for job %s not handled: %s", job.id, e.message)
        except Exception:
            db.session.rollback()
            stats["errors"] += 1
            logger.exception("Scheduler: failed to process expired assignment for job %s", job.id)
    return _finish("expired-assignment sweep", stats)


# ---------------------------------------------------------------------------
# 4. Unpaid-booking purge
# ---------------------------------------------------------------------------
def purge_unpaid_jobs(notifier=None, now=None):
    """Delete bookings whose deposit never arrived within the grace period.

    This is the only code path that deletes a job. The customer is told first.
    """
    now = now or utcnow()
    grace = timedelta(minutes=current_app.config.get("UNPAID_GRACE_MINUTES", 30))
    jobs = Job.query.filter(
        Job.deposit_paid.is_(False),
        Job.payment_status == "pending",
        Job.created_at < now - grace,
        Job.status.in_(ASSIGNABLE_JOB_STATUSES),
        Job.move_type != "long-distance",
        Job.provider_id.is_(None),
    ).all()

    stats = _stats(len(jobs))
    notifier = notifier or get_notifier()
    frontend_url = current_app.config.get("FRONTEND_URL", "").rstrip("/")
    for job in jobs:
        job_id = job.id
        try:
            recipient = job.customer_email
            if recipient:
                try:
                    notifier.notify(JobEvent(
                        "booking_cancelled",
                        recipient,
                        job_event_context(
                            job,
                            reason="Payment was not completed within {} minutes".format(
                                int(grace.total_seconds() // 60)
                            ),
                            rebook_url="{}/book".format(frontend_url),
                        ),
                    ))
                except Exception:
                    logger.exception("Scheduler: failed to send cancellation email for job %s", job_id)

            if job.customer_id:
                Notification.create_notification(
                    recipient_id=job.customer_id,
                    recipient_type="user",
                    notification_type="system-alert",
                    title="Booking Cancelled",
                    message="Your booking was cancelled because the deposit was not received.",
                    priority="medium",
                    data={"job_id": job_id},
                )

            db.session.delete(job)
            db.session.commit()
            stats["processed"] += 1
            logger.info("Scheduler: deleted unpaid job %s", job_id)
        except Exception:
            db.session.rollback()
            stats["errors"] += 1
            logger.exception("Scheduler: failed to purge unpaid job %s", job_id)
    return _finish("unpaid purge", stats)


# ---------------------------------------------------------------------------
# 5. Long-distance intake
# ---------------------------------------------------------------------------
def process_long_distance_jobs(notifier=None, now=None):
    """Send intake emails for new long-distance jobs exactly once."""
    now = now or utcnow()
    jobs = Job.query.filter(
        Job.move_type == "long-distance",
        Job.status.in_(ASSIGNABLE_JOB_STATUSES),
        Job.move_date >= now,
        Job.long_distance_processed.is_(False),
    ).all()

    stats = _stats(len(jobs))
    notifier = notifier or get_notifier()
    team_email = current_app.config.get("COORDINATION_TEAM_EMAIL")
    for job in jobs:
        try:
            claimed = Job.query.filter(
                Job.id == job.id,
                Job.long_distance_processed.is_(False),
            ).update({
                Job.long_distance_processed: True,
                Job.status: "pending-assignment",
                Job.updated_at: now,
            }, synchronize_session=False)
            db.session.commit()
            if not claimed:
                stats["skipped"] += 1
                continue

            context = job_event_context(
                job,
                customer_email=job.customer_email,
                customer_phone=job.customer_phone,
                home_size=job.home_size,
                quote_subtotal=job.quote_subtotal,
            )
            if context["customer_email"]:
                try:
                    notifier.notify(JobEvent("long_distance_confirmation", context["customer_email"], context))
                except Exception:
                    logger.exception("Scheduler: failed to send long-distance confirmation for job %s", job.id)
            if team_email:
                try:
                    notifier.notify(JobEvent("long_distance_team", team_email, context))
                except Exception:
                    logger.exception("Scheduler: failed to notify coordination team about job %s", job.id)
            stats["processed"] += 1
        except Exception:
            db.session.rollback()
            stats["errors"] += 1
            logger.exception("Scheduler: failed to process long-distance job %s", job.id)
    return _finish("long-distance intake", stats)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------
def _run_task(app, task):
    """Run one sweep inside an app context. Never raises."""
    with app.app_context():
        try:
            task()
        except Exception:
            db.session.rollback()
            logger.exception("Scheduler: task %s failed", task.__name__)


TASKS = (
    # (callable, config key for interval minutes, description)
    (sweep_new_dispatches, "DISPATCH_SWEEP_MINUTES", "Dispatch alerts for paid jobs"),
    (sweep_expired_alerts, "EXPIRED_ALERT_SWEEP_MINUTES", "Expire unanswered job alerts"),
    (sweep_expired_assignments, "EXPIRED_ASSIGNMENT_SWEEP_MINUTES", "Process expired job assignments"),
    (purge_unpaid_jobs, "UNPAID_PURGE_MINUTES", "Purge unpaid bookings"),
    (process_long_distance_jobs, "LONG_DISTANCE_SWEEP_MINUTES", "Process long-distance bookings"),
)


def init_scheduler(app):
    """Initialize and start the background scheduler.

    Only runs if ENABLE_SCHEDULER is set in the app config.
    """
    if not app.config.get("ENABLE_SCHEDULER"):
        logger.info("Scheduler disabled (set ENABLE_SCHEDULER=true to enable)")
        return None

    try:
        scheduler = BackgroundScheduler(
            daemon=True,
            timezone=app.config.get("SCHEDULER_TIMEZONE", "UTC"),
        )
        for task, interval_key, name in TASKS:
            kwargs = {}
            if task is sweep_new_dispatches:
                # Also fire once right after start-up
                kwargs["next_run_time"] = datetime.now(scheduler.timezone)
            scheduler.add_job(
                _run_task,
                "interval",
                minutes=app.config.get(interval_key),
                args=[app, task],
                id=task.__name__,
                name=name,
                max_instances=1,
                coalesce=True,
                **kwargs
            )

        scheduler.start()
        app.extensions["scheduler"] = scheduler
        logger.info("Background scheduler started with %d jobs", len(TASKS))
        return scheduler
    except Exception:
        logger.exception("Failed to start scheduler")
        return None


def _iso_or_none(value):
    return value.isoformat() if value else None


def get_scheduler_status(scheduler=None):
    if scheduler is None:
        scheduler = current_app.extensions.get("scheduler")
    if scheduler is None:
        return {"running": False, "jobs": []}
    return {
        "running": bool(scheduler.running),
        "jobs": [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": _iso_or_none(getattr(job, "next_run_time", None)),
            }
            for job in scheduler.get_jobs()
        ],
    }
