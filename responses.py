"""
Response resolution: providers answering alerts, and administrative overrides.

Accepting an alert is first-committer-wins. Inside one transaction the alert
is moved ``sent -> claimed``, the job is bound with a conditional update
guarded on its assignment sub-state, and every sibling live alert is voided.
A contender whose job update matches no row gets ``AlreadyAssigned``.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import case

from errors import EngineError, NotFound, NotEligible, AlreadyResolved, AlreadyAssigned, AlreadyClaimed
from models import (
    db, Job, JobAlert, Provider, Notification, generate_uuid, utcnow,
    JOB_STATUSES, LIVE_ALERT_STATUSES, OPEN_ASSIGNMENT_STATUSES,
)
from notifications import JobEvent, get_notifier, job_event_context

logger = logging.getLogger(__name__)

CLOSED_JOB_STATUSES = ("completed", "cancelled")


def compute_job_amount(job):
    """Balance still owed after the deposit, or "To be determined" without a quote."""
    if job.quote_subtotal is None:
        return "To be determined"
    deposit_dollars = (job.deposit_amount_cents or 0) / 100.0
    return round(job.quote_subtotal - deposit_dollars, 2)


def _response_fields(response, now):
    return {
        JobAlert.response_interested: bool(response.get("interested")),
        JobAlert.response_message: response.get("message"),
        JobAlert.response_estimated_price: response.get("estimated_price"),
        JobAlert.response_estimated_time: response.get("estimated_time"),
        JobAlert.response_time: now,
        JobAlert.responded_at: now,
        JobAlert.updated_at: now,
    }


def _void_sibling_alerts(job_id, keep_alert_id, statuses=LIVE_ALERT_STATUSES):
    return JobAlert.query.filter(
        JobAlert.job_id == job_id,
        JobAlert.id != keep_alert_id,
        JobAlert.status.in_(statuses),
    ).update({
        JobAlert.status: "not-interested",
        JobAlert.updated_at: utcnow(),
    }, synchronize_session=False)


def _get_owned_alert(alert_id, provider_id=None):
    alert = db.session.get(JobAlert, alert_id)
    if alert is None or (provider_id is not None and alert.provider_id != provider_id):
        raise NotFound("Job alert not found")
    return alert


def respond_to_alert(alert_id, response, provider_id=None, notifier=None, now=None):
    """Record a provider's answer to an alert. Returns the refreshed alert."""
    now = now or utcnow()
    response = response or {}
    alert = _get_owned_alert(alert_id, provider_id)
    if alert.status != "sent":
        raise AlreadyResolved()

    interested = bool(response.get("interested"))
    job_id = alert.job_id

    try:
        fields = _response_fields(response, now)
        fields[JobAlert.status] = "claimed" if interested else "not-interested"
        updated = JobAlert.query.filter(
            JobAlert.id == alert.id,
            JobAlert.status == "sent",
        ).update(fields, synchronize_session=False)
        if not updated:
            raise AlreadyResolved()

        if interested:
            claimed = Job.query.filter(
                Job.id == job_id,
                Job.assignment_status.in_(OPEN_ASSIGNMENT_STATUSES),
                Job.provider_id.is_(None),
            ).update({
                Job.provider_id: alert.provider_id,
                Job.assignment_status: "assigned",
                Job.assigned_at: now,
                Job.assigned_by_type: "system",
                Job.assigned_by_id: None,
                Job.status: case(
                    (Job.status == "pending-assignment", "quote-requested"),
                    else_=Job.status,
                ),
                Job.updated_at: now,
            }, synchronize_session=False)
            if not claimed:
                raise AlreadyAssigned()

            voided = _void_sibling_alerts(job_id, alert.id)
        db.session.commit()
    except EngineError:
        db.session.rollback()
        raise

    db.session.refresh(alert)
    if not interested:
        logger.info("Provider %s declined job %s", alert.provider_id, job_id)
        return alert

    logger.info("Provider %s claimed job %s (%d sibling alerts voided)", alert.provider_id, job_id, voided)
    job = db.session.get(Job, job_id)
    _announce_assignment(job, alert.provider, notifier)
    return alert


def mark_alert_viewed(alert_id, provider_id=None):
    """Stamp the first view. Status is unchanged so the alert stays answerable."""
    alert = _get_owned_alert(alert_id, provider_id)
    if alert.viewed_at is None:
        alert.viewed_at = utcnow()
        db.session.commit()
    return alert


def assign_provider(job_id, provider_id, assigned_by_type="admin", assigned_by_id=None,
                    status=None, reassign=False, notifier=None, now=None):
    """Bind a provider to a job directly, bypassing matching and dispatch.

    Produces the same sibling voiding and notifications as an accepted alert.
    """
    now = now or utcnow()
    if assigned_by_type not in ("system", "admin"):
        raise NotEligible("assigned_by_type must be 'system' or 'admin'")
    if status is not None and status not in JOB_STATUSES:
        raise NotEligible("Invalid job status: {}".format(status))

    job = db.session.get(Job, job_id)
    if job is None:
        raise NotFound("Job not found")
    provider = db.session.get(Provider, provider_id)
    if provider is None:
        raise NotFound("Provider not found")

    if provider.status != "approved" or not provider.is_verified:
        raise NotEligible("Provider must be approved and verified")
    if job.status in CLOSED_JOB_STATUSES:
        raise NotEligible("Cannot assign a {} job".format(job.status))

    previous_provider_id = job.provider_id
    if previous_provider_id and previous_provider_id != provider.id and not reassign:
        raise AlreadyClaimed()

    try:
        provider_guard = (
            Job.provider_id.is_(None) if previous_provider_id is None
            else Job.provider_id == previous_provider_id
        )
        updated = Job.query.filter(
            Job.id == job.id,
            provider_guard,
            Job.status.notin_(CLOSED_JOB_STATUSES),
        ).update({
            Job.provider_id: provider.id,
            Job.assignment_status: "assigned",
            Job.assigned_at: now,
            Job.assigned_by_type: assigned_by_type,
            Job.assigned_by_id: assigned_by_id,
            Job.status: status or "confirmed",
            Job.updated_at: now,
        }, synchronize_session=False)
        if not updated:
            raise AlreadyClaimed("Job assignment changed while assigning")

        alert = JobAlert.query.filter_by(
            job_id=job.id, provider_id=provider.id, status="claimed"
        ).first()
        if alert is None:
            alert_ttl = timedelta(hours=current_app.config.get("ALERT_TTL_HOURS", 24))
            alert = JobAlert(
                id=generate_uuid(),
                job_id=job.id,
                provider_id=provider.id,
                status="claimed",
                response_interested=True,
                response_message="Admin assigned the job",
                response_time=now,
                sent_at=now,
                expires_at=now + alert_ttl,
                responded_at=now,
            )
            db.session.add(alert)
            db.session.flush()

        # A reassignment also voids the previous provider's claim
        void_statuses = LIVE_ALERT_STATUSES + ("claimed",)
        voided = _void_sibling_alerts(job.id, alert.id, statuses=void_statuses)
        db.session.commit()
    except EngineError:
        db.session.rollback()
        raise

    logger.info(
        "Job %s assigned to provider %s by %s %s (%d alerts voided)",
        job.id, provider.id, assigned_by_type, assigned_by_id, voided,
    )
    db.session.refresh(job)
    _announce_assignment(job, provider, notifier)
    return job


def _announce_assignment(job, provider, notifier=None):
    """In-app notifications to both parties plus the claimed-job email."""
    date_str = job.move_date.strftime("%B %d, %Y") if job.move_date else "your move date"
    try:
        if job.customer_id:
            Notification.create_notification(
                recipient_id=job.customer_id,
                recipient_type="user",
                notification_type="job-claimed",
                title="Mover Assigned!",
                message="{} has accepted your moving job for {}.".format(provider.display_name, date_str),
                related_id=job.id,
                priority="high",
                data=provider.to_contact_dict(),
            )
        Notification.create_notification(
            recipient_id=provider.id,
            recipient_type="provider",
            notification_type="job-claimed",
            title="Job Claimed Successfully!",
            message="You have claimed the move for {} on {}.".format(job.customer_name, date_str),
            related_id=job.id,
            priority="high",
            data={
                "customer_name": job.customer_name,
                "customer_email": job.customer_email,
                "customer_phone": job.customer_phone,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to create assignment notifications for job %s", job.id)

    recipient = job.customer_email
    if not recipient:
        logger.info("Job %s has no customer email; skipping claimed email", job.id)
        return

    notifier = notifier or get_notifier()
    try:
        notifier.notify(JobEvent(
            "job_claimed",
            recipient,
            job_event_context(
                job,
                provider_name=provider.display_name,
                provider_phone=provider.phone,
                provider_email=provider.email,
                job_amount=compute_job_amount(job),
            ),
        ))
    except Exception:
        logger.exception("Failed to send job claimed email for job %s", job.id)
