"""
Completion of claimed jobs.

Only a ``claimed`` alert can start or complete its job. Completion emails to
the customer and the provider are sent independently, so one failure never
blocks the other or the state transition.
"""

import logging

from errors import NotFound, NotClaimed, NotEligible
from models import db, Job, JobAlert, Notification, utcnow
from notifications import JobEvent, get_notifier, job_event_context
from email_templates import format_date

logger = logging.getLogger(__name__)


def _get_alert(alert_id, provider_id=None):
    alert = db.session.get(JobAlert, alert_id)
    if alert is None or (provider_id is not None and alert.provider_id != provider_id):
        raise NotFound("Job alert not found")
    return alert


def start_job(alert_id, provider_id=None, now=None):
    """Move a claimed job to in-progress and record the start time."""
    now = now or utcnow()
    alert = _get_alert(alert_id, provider_id)
    if alert.status != "claimed":
        raise NotClaimed()

    updated = Job.query.filter(
        Job.id == alert.job_id,
        Job.provider_id == alert.provider_id,
        Job.assignment_status.in_(("claimed", "assigned")),
    ).update({
        Job.assignment_status: "in-progress",
        Job.status: "in-progress",
        Job.actual_start_time: now,
        Job.updated_at: now,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise NotEligible("Job cannot be started from its current state")
    db.session.commit()

    logger.info("Job %s started by provider %s", alert.job_id, alert.provider_id)
    return db.session.get(Job, alert.job_id)


def build_completion_summary(job, provider, completed_at):
    return job_event_context(
        job,
        customer_email=job.customer_email,
        provider_name=provider.display_name if provider else "Your mover",
        provider_email=provider.email if provider else None,
        provider_phone=provider.phone if provider else None,
        completion_date=format_date(completed_at),
        payment_amount=job.quote_subtotal,
        final_cost=job.final_cost,
    )


def complete_job(alert_id, provider_id=None, final_cost=None, completion_notes=None,
                 notifier=None, now=None):
    """Complete the job behind a claimed alert.

    Returns ``(alert, summary)`` where summary is the completion email context.
    """
    now = now or utcnow()
    alert = _get_alert(alert_id, provider_id)

    updated = JobAlert.query.filter(
        JobAlert.id == alert.id,
        JobAlert.status == "claimed",
    ).update({
        JobAlert.status: "completed",
        JobAlert.completed_at: now,
        JobAlert.updated_at: now,
    }, synchronize_session=False)
    if not updated:
        db.session.rollback()
        raise NotClaimed()

    job = db.session.get(Job, alert.job_id)
    job.status = "completed"
    job.assignment_status = "completed"
    job.actual_end_time = now
    if job.actual_start_time:
        job.actual_duration = round((now - job.actual_start_time).total_seconds() / 3600.0, 2)
    if final_cost is not None:
        job.final_cost = final_cost
    if completion_notes:
        job.completion_notes = completion_notes
    db.session.commit()
    db.session.refresh(alert)

    provider = alert.provider
    summary = build_completion_summary(job, provider, now)
    logger.info("Job %s completed by provider %s", job.id, alert.provider_id)

    try:
        if job.customer_id:
            Notification.create_notification(
                recipient_id=job.customer_id,
                recipient_type="user",
                notification_type="job-completed",
                title="Move Completed!",
                message="Your move with {} has been completed.".format(summary["provider_name"]),
                related_id=job.id,
                priority="medium",
            )
        Notification.create_notification(
            recipient_id=alert.provider_id,
            recipient_type="provider",
            notification_type="job-completed",
            title="Job Completed Successfully!",
            message="You completed the move for {} on {}.".format(
                summary["customer_name"], summary["move_date"]
            ),
            related_id=job.id,
            priority="medium",
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to create completion notifications for job %s", job.id)

    notifier = notifier or get_notifier()

    if summary["customer_email"]:
        try:
            notifier.notify(JobEvent("job_completed_customer", summary["customer_email"], summary))
        except Exception:
            logger.exception("Failed to send customer completion email for job %s", job.id)

    if summary["provider_email"]:
        try:
            notifier.notify(JobEvent("job_completed_provider", summary["provider_email"], summary))
        except Exception:
            logger.exception("Failed to send provider completion email for job %s", job.id)

    return alert, summary
