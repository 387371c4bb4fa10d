"""
Email delivery and the job-event notifier for Book & Move.

Email: Resend (preferred) or SendGrid (legacy fallback), dev-mode logging
when neither is configured.

``send_email`` and ``send_email_sync`` never raise. All errors are caught
and logged so that a notification failure never takes down a dispatch,
claim or completion flow.

Engine code talks to ``EmailNotifier`` through ``get_notifier()``. The
notifier renders one template per ``JobEvent.kind``. Callers wrap every
``notify`` call in their own try/except.
"""

import os
import logging
import threading
from collections import namedtuple

from flask import current_app

from email_templates import (
    job_alert_html,
    job_claimed_html,
    job_completed_customer_html,
    job_completed_provider_html,
    job_expired_html,
    booking_cancelled_html,
    long_distance_confirmation_html,
    long_distance_team_html,
    short_id,
    format_date,
    format_location,
)

logger = logging.getLogger(__name__)


JobEvent = namedtuple("JobEvent", ["kind", "recipient_email", "context"])

EmailSettings = namedtuple(
    "EmailSettings", ["resend_api_key", "sendgrid_api_key", "from_email", "from_name"]
)


class NotificationError(Exception):
    pass


def _env_settings():
    return EmailSettings(
        resend_api_key=os.environ.get("RESEND_API_KEY", ""),
        sendgrid_api_key=os.environ.get("SENDGRID_API_KEY", ""),
        from_email=os.environ.get("EMAIL_FROM", "bookings@bookandmove.com"),
        from_name=os.environ.get("EMAIL_FROM_NAME", "Book & Move"),
    )


def settings_from_config(config):
    return EmailSettings(
        resend_api_key=config.get("RESEND_API_KEY", ""),
        sendgrid_api_key=config.get("SENDGRID_API_KEY", ""),
        from_email=config.get("EMAIL_FROM", "bookings@bookandmove.com"),
        from_name=config.get("EMAIL_FROM_NAME", "Book & Move"),
    )


# ---------------------------------------------------------------------------
# Email transport
# ---------------------------------------------------------------------------
def deliver_email(to_email, subject, html_content, settings=None):
    """Send an email via Resend (preferred) or SendGrid (fallback).

    Returns the provider's id/status, or None in dev mode. Raises on failure.
    """
    settings = settings or _env_settings()

    if settings.resend_api_key:
        return _send_email_resend(to_email, subject, html_content, settings)

    if settings.sendgrid_api_key:
        return _send_email_sendgrid(to_email, subject, html_content, settings)

    # Dev mode: no email provider configured
    logger.info("[DEV] Email to %s: %s", to_email, subject)
    return None


def send_email_sync(to_email, subject, html_content, settings=None):
    """Synchronous sender. Never raises."""
    try:
        return deliver_email(to_email, subject, html_content, settings)
    except Exception:
        logger.exception("Failed to send email to %s", to_email)
        return None


def send_email(to_email, subject, html_content, settings=None):
    """Send an email asynchronously in a background thread.

    Returns immediately. Never raises.
    """
    try:
        thread = threading.Thread(
            target=send_email_sync,
            args=(to_email, subject, html_content, settings),
            daemon=True,
        )
        thread.start()
        logger.debug("Email queued (async) to %s: %s", to_email, subject)
    except Exception:
        logger.exception("Failed to queue async email to %s", to_email)


def _send_email_resend(to_email, subject, html_content, settings):
    import resend
    resend.api_key = settings.resend_api_key

    params = {
        "from": "{} <{}>".format(settings.from_name, settings.from_email),
        "to": [to_email],
        "subject": subject,
        "html": html_content,
    }
    response = resend.Emails.send(params)
    logger.info("Email sent via Resend to %s (id: %s)", to_email, response.get("id"))
    return response.get("id")


def _send_email_sendgrid(to_email, subject, html_content, settings):
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Mail

    message = Mail(
        from_email=(settings.from_email, settings.from_name),
        to_emails=to_email,
        subject=subject,
        html_content=html_content,
    )
    sg = SendGridAPIClient(settings.sendgrid_api_key)
    response = sg.send(message)
    if response.status_code >= 400:
        raise NotificationError("SendGrid returned status {}".format(response.status_code))
    logger.info("Email sent via SendGrid to %s (status: %s)", to_email, response.status_code)
    return response.status_code


# ---------------------------------------------------------------------------
# Event rendering
# ---------------------------------------------------------------------------
def _render_job_alert(ctx):
    subject = "New Moving Job Available: {}".format(ctx.get("move_date") or "TBD")
    html = job_alert_html(
        provider_name=ctx.get("provider_name"),
        job_id=ctx.get("job_id"),
        move_date=ctx.get("move_date"),
        move_time=ctx.get("move_time"),
        pickup=ctx.get("pickup"),
        dropoff=ctx.get("dropoff"),
        home_size=ctx.get("home_size"),
        estimated_duration=ctx.get("estimated_duration"),
        services=ctx.get("services"),
        dashboard_url=ctx.get("dashboard_url"),
    )
    return subject, html


def _render_job_claimed(ctx):
    subject = "Your Mover Has Been Assigned! #{}".format(short_id(ctx.get("job_id")))
    html = job_claimed_html(
        customer_name=ctx.get("customer_name"),
        job_id=ctx.get("job_id"),
        provider_name=ctx.get("provider_name"),
        provider_phone=ctx.get("provider_phone"),
        provider_email=ctx.get("provider_email"),
        move_date=ctx.get("move_date"),
        move_time=ctx.get("move_time"),
        pickup=ctx.get("pickup"),
        dropoff=ctx.get("dropoff"),
        job_amount=ctx.get("job_amount"),
    )
    return subject, html


def _render_job_completed_customer(ctx):
    subject = "Your Move Is Complete! #{}".format(short_id(ctx.get("job_id")))
    html = job_completed_customer_html(
        customer_name=ctx.get("customer_name"),
        provider_name=ctx.get("provider_name"),
        job_id=ctx.get("job_id"),
        move_date=ctx.get("move_date"),
        completion_date=ctx.get("completion_date"),
        pickup=ctx.get("pickup"),
        dropoff=ctx.get("dropoff"),
        payment_amount=ctx.get("payment_amount"),
        review_url=ctx.get("review_url"),
    )
    return subject, html


def _render_job_completed_provider(ctx):
    subject = "Job Completed #{}".format(short_id(ctx.get("job_id")))
    html = job_completed_provider_html(
        provider_name=ctx.get("provider_name"),
        customer_name=ctx.get("customer_name"),
        job_id=ctx.get("job_id"),
        move_date=ctx.get("move_date"),
        completion_date=ctx.get("completion_date"),
        pickup=ctx.get("pickup"),
        dropoff=ctx.get("dropoff"),
        payment_amount=ctx.get("payment_amount"),
    )
    return subject, html


def _render_job_expired(ctx):
    subject = "We Couldn't Find a Mover for Your Job #{}".format(short_id(ctx.get("job_id")))
    html = job_expired_html(
        customer_name=ctx.get("customer_name"),
        job_id=ctx.get("job_id"),
        move_date=ctx.get("move_date"),
        support_email=ctx.get("support_email"),
    )
    return subject, html


def _render_booking_cancelled(ctx):
    subject = "Your Booking Has Been Cancelled #{}".format(short_id(ctx.get("job_id")))
    html = booking_cancelled_html(
        customer_name=ctx.get("customer_name"),
        job_id=ctx.get("job_id"),
        move_date=ctx.get("move_date"),
        reason=ctx.get("reason") or "Deposit was not received",
        rebook_url=ctx.get("rebook_url"),
    )
    return subject, html


def _render_long_distance_confirmation(ctx):
    subject = "We Received Your Long-Distance Move Request"
    html = long_distance_confirmation_html(
        customer_name=ctx.get("customer_name"),
        job_id=ctx.get("job_id"),
        move_date=ctx.get("move_date"),
        pickup=ctx.get("pickup"),
        dropoff=ctx.get("dropoff"),
    )
    return subject, html


def _render_long_distance_team(ctx):
    subject = "New Long-Distance Job #{}".format(short_id(ctx.get("job_id")))
    html = long_distance_team_html(
        job_id=ctx.get("job_id"),
        customer_name=ctx.get("customer_name"),
        customer_email=ctx.get("customer_email"),
        customer_phone=ctx.get("customer_phone"),
        move_date=ctx.get("move_date"),
        move_time=ctx.get("move_time"),
        pickup=ctx.get("pickup"),
        dropoff=ctx.get("dropoff"),
        home_size=ctx.get("home_size"),
        quote_subtotal=ctx.get("quote_subtotal"),
    )
    return subject, html


EVENT_RENDERERS = {
    "job_alert": _render_job_alert,
    "job_claimed": _render_job_claimed,
    "job_completed_customer": _render_job_completed_customer,
    "job_completed_provider": _render_job_completed_provider,
    "job_expired": _render_job_expired,
    "booking_cancelled": _render_booking_cancelled,
    "long_distance_confirmation": _render_long_distance_confirmation,
    "long_distance_team": _render_long_distance_team,
}


def render_event(event):
    renderer = EVENT_RENDERERS.get(event.kind)
    if renderer is None:
        raise NotificationError("Unknown event kind: {}".format(event.kind))
    return renderer(event.context or {})


# ---------------------------------------------------------------------------
# Notifier port
# ---------------------------------------------------------------------------
class EmailNotifier:
    """Best-effort notifier that turns a JobEvent into an email.

    ``notify`` raises on failure in synchronous mode. In async mode the send
    is queued on a background thread and transport errors are only logged.
    """

    def __init__(self, app=None):
        self.settings = None
        self.send_async = True
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.settings = settings_from_config(app.config)
        self.send_async = app.config.get("EMAIL_ASYNC", True)
        app.extensions["notifier"] = self

    def notify(self, event):
        if not event.recipient_email:
            raise NotificationError("No recipient for {} event".format(event.kind))
        subject, html = render_event(event)
        if self.send_async:
            send_email(event.recipient_email, subject, html, self.settings)
            return None
        return deliver_email(event.recipient_email, subject, html, self.settings)


def get_notifier():
    return current_app.extensions["notifier"]


def job_event_context(job, **extra):
    """Fields every job email shares, plus any event-specific extras."""
    context = {
        "job_id": job.id,
        "customer_name": job.customer_name,
        "move_date": format_date(job.move_date),
        "move_time": job.move_time,
        "pickup": format_location(job.pickup_city, job.pickup_state),
        "dropoff": format_location(job.dropoff_city, job.dropoff_state),
    }
    context.update(extra)
    return context
