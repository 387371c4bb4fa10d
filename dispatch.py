"""
Alert dispatch: fan a paid job out to every eligible provider.

A round first claims the job with a conditional update on its dispatch
lease, so concurrent callers cannot alert the same job twice. Alerts and
their in-app notifications are written in one batch, after which the job's
assignment sub-state is moved to ``alerted`` with a conditional update,
and only after that commit are alert emails attempted. Email failures are
logged per provider and never undo the dispatch.
"""

import logging
from collections import namedtuple
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_

from errors import NotFound, NotEligible
from matching import find_eligible_providers, handle_no_candidates
from models import (
    db, Job, JobAlert, Notification, generate_uuid, utcnow,
    LIVE_ALERT_STATUSES, OPEN_ASSIGNMENT_STATUSES,
)
from notifications import JobEvent, get_notifier, job_event_context

logger = logging.getLogger(__name__)


class DispatchResult(namedtuple("DispatchResult", ["job_id", "alerts_sent", "provider_ids", "message", "skipped"])):
    __slots__ = ()

    def to_dict(self):
        return {
            "job_id": self.job_id,
            "alerts_sent": self.alerts_sent,
            "provider_ids": list(self.provider_ids),
            "message": self.message,
            "skipped": self.skipped,
        }


def _recently_dispatched(job, now):
    minutes = current_app.config.get("DISPATCH_IDEMPOTENCY_MINUTES", 30)
    since = now - timedelta(minutes=minutes)
    return db.session.query(JobAlert.id).filter(
        JobAlert.job_id == job.id,
        JobAlert.sent_at >= since,
    ).first() is not None


def _claim_dispatch_round(job, now):
    """Stamp the job's dispatch lease; False when another round holds it.

    The lease is a conditional update, so two concurrent callers cannot both
    reach the alert-writing step for the same job.
    """
    minutes = current_app.config.get("DISPATCH_IDEMPOTENCY_MINUTES", 30)
    lease_cutoff = now - timedelta(minutes=minutes)
    claimed = Job.query.filter(
        Job.id == job.id,
        Job.assignment_status.in_(OPEN_ASSIGNMENT_STATUSES),
        or_(
            Job.last_dispatch_attempt_at.is_(None),
            Job.last_dispatch_attempt_at < lease_cutoff,
        ),
    ).update({
        Job.last_dispatch_attempt_at: now,
        Job.updated_at: utcnow(),
    }, synchronize_session=False)
    db.session.commit()
    return claimed == 1


def _providers_with_live_alerts(job):
    rows = db.session.query(JobAlert.provider_id).filter(
        JobAlert.job_id == job.id,
        JobAlert.status.in_(LIVE_ALERT_STATUSES),
    ).all()
    return {provider_id for (provider_id,) in rows}


def _alert_message(job):
    pickup = job.pickup_city or job.pickup_zip
    date_str = job.move_date.strftime("%B %d, %Y") if job.move_date else "TBD"
    return "New {} job in {} on {}".format(job.move_type or "moving", pickup, date_str)


def dispatch_job(job_id, notifier=None, now=None):
    """Send alerts for *job_id* to all eligible providers.

    Returns a ``DispatchResult``. A recent dispatch (inside the idempotency
    window), or a round already holding the job's dispatch lease, yields a
    skipped result without alerts. Zero matches is a normal outcome, not an
    error.

    Raises NotFound for an unknown job and NotEligible when the job is not
    paid, not assignable, or already past the alerting stage.
    """
    now = now or utcnow()
    config = current_app.config

    job = db.session.get(Job, job_id)
    if job is None:
        raise NotFound("Job not found")

    if _recently_dispatched(job, now):
        logger.info("Job %s was dispatched recently; skipping", job.id)
        return DispatchResult(job.id, 0, [], "Job was already dispatched recently", True)

    realert_after = timedelta(hours=config.get("REALERT_AFTER_HOURS", 2))
    if not job.is_dispatch_eligible(now=now, realert_after=realert_after):
        raise NotEligible(
            "Job is not eligible for dispatch (deposit_paid={}, status={}, assignment={})".format(
                job.deposit_paid, job.status, job.assignment_status
            )
        )

    previous_attempt = job.last_dispatch_attempt_at
    if not _claim_dispatch_round(job, now):
        logger.info("Job %s is already being dispatched; skipping", job.id)
        return DispatchResult(job.id, 0, [], "Job is already being dispatched", True)

    providers = find_eligible_providers(job, now=now)
    if not providers:
        handle_no_candidates(job, now=now, previous_attempt=previous_attempt)
        db.session.commit()
        return DispatchResult(job.id, 0, [], "No eligible movers found", False)

    already_alerted = _providers_with_live_alerts(job)
    candidates = [p for p in providers if p.id not in already_alerted]

    alert_ttl = timedelta(hours=config.get("ALERT_TTL_HOURS", 24))
    title = "New Job Available"
    message = _alert_message(job)
    sent = []
    for provider in candidates:
        alert = JobAlert(
            id=generate_uuid(),
            job_id=job.id,
            provider_id=provider.id,
            status="sent",
            sent_at=now,
            expires_at=now + alert_ttl,
        )
        db.session.add(alert)
        notification = Notification.create_notification(
            recipient_id=provider.id,
            recipient_type="provider",
            notification_type="job-alert",
            title=title,
            message=message,
            related_id=job.id,
            priority="high",
            data={
                "job_alert_id": alert.id,
                "move_date": job.move_date.isoformat() if job.move_date else None,
                "pickup_city": job.pickup_city,
                "pickup_state": job.pickup_state,
                "home_size": job.home_size,
                "estimated_duration": job.estimated_duration,
            },
        )
        sent.append((alert, notification, provider))
    db.session.commit()

    # Assignment window is extended to at least one alert lifetime from now
    min_expiry = now + alert_ttl
    current_expiry = job.assignment_expires_at
    new_expiry = current_expiry if current_expiry and current_expiry > min_expiry else min_expiry

    updated = Job.query.filter(
        Job.id == job.id,
        Job.assignment_status.in_(OPEN_ASSIGNMENT_STATUSES),
    ).update({
        Job.assignment_status: "alerted",
        Job.alerts_sent: Job.alerts_sent + len(sent),
        Job.last_alert_sent_at: now,
        Job.assignment_expires_at: new_expiry,
        Job.updated_at: utcnow(),
    }, synchronize_session=False)
    db.session.commit()

    alert_ids = [alert.id for alert, _, _ in sent]
    if not updated:
        # Job was claimed while alerts were being written
        if alert_ids:
            JobAlert.query.filter(
                JobAlert.id.in_(alert_ids),
                JobAlert.status == "sent",
            ).update({JobAlert.status: "not-interested"}, synchronize_session=False)
            db.session.commit()
        logger.warning("Job %s left the open state during dispatch; alerts voided", job.id)
        return DispatchResult(job.id, 0, [], "Job was assigned during dispatch", True)

    notifier = notifier or get_notifier()
    dashboard_url = "{}/mover/jobs".format(config.get("FRONTEND_URL", "").rstrip("/"))
    emailed = 0
    for alert, notification, provider in sent:
        try:
            notifier.notify(JobEvent(
                "job_alert",
                provider.email,
                job_event_context(
                    job,
                    provider_name=provider.display_name,
                    home_size=job.home_size,
                    estimated_duration=job.estimated_duration,
                    services=job.services_requested or [],
                    dashboard_url=dashboard_url,
                ),
            ))
        except Exception:
            logger.exception("Failed to email job alert %s to provider %s", alert.id, provider.id)
            continue
        # Accepted by the notifier; queued rather than delivered in async mode
        stamp = utcnow()
        alert.email_sent = True
        alert.email_sent_at = stamp
        notification.email_sent = True
        notification.email_sent_at = stamp
        emailed += 1
    db.session.commit()

    provider_ids = [provider.id for _, _, provider in sent]
    logger.info(
        "Dispatched job %s to %d providers (%d emailed, %d already alerted)",
        job.id, len(sent), emailed, len(already_alerted),
    )
    if sent:
        message = "Job alerts sent to {} movers".format(len(sent))
    else:
        message = "All eligible movers have already been alerted"
    return DispatchResult(job.id, len(sent), provider_ids, message, False)


def confirm_deposit(job_id, payment_intent_id=None, notifier=None, now=None):
    """Record a successful deposit charge and dispatch the job.

    Dispatch problems are logged and never fail the confirmation. Returns
    ``(job, DispatchResult or None)``.
    """
    now = now or utcnow()
    job = db.session.get(Job, job_id)
    if job is None:
        raise NotFound("Job not found")

    if job.deposit_paid:
        logger.info("Deposit for job %s already confirmed", job.id)
    else:
        job.deposit_paid = True
        job.deposit_paid_at = now
        job.payment_status = "deposit-paid"
        if payment_intent_id:
            job.deposit_payment_intent_id = payment_intent_id
        db.session.commit()
        logger.info("Deposit confirmed for job %s", job.id)

    result = None
    try:
        result = dispatch_job(job.id, notifier=notifier, now=now)
    except NotEligible as e:
        logger.warning("Job %s not dispatched after deposit: %s", job.id, e.message)
    except Exception:
        db.session.rollback()
        logger.exception("Dispatch failed after deposit for job %s", job.id)
    return job, result
