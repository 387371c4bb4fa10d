"""
Eligibility matching for job dispatch.

Location eligibility is an exact string match on postal codes between the
provider's service areas (or business address) and the job's pickup or
dropoff zip. No geo distance is computed.
"""

import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_, and_, func

from models import Provider, ProviderServiceArea, Job, Notification, utcnow

logger = logging.getLogger(__name__)


def _job_zips(job):
    return [z for z in {job.pickup_zip, job.dropoff_zip} if z]


def eligible_providers_query(now=None):
    """Providers that may receive alerts at all, before location filtering."""
    now = now or utcnow()
    return Provider.query.filter(
        Provider.is_active.is_(True),
        Provider.status == "approved",
        Provider.subscription_status == "active",
        Provider.subscription_expires_at > now,
    )


def find_eligible_providers(job, now=None, limit=None):
    """Return providers eligible for *job*, best-ranked first.

    Ranking is rating average descending, then rating count descending.
    """
    zips = _job_zips(job)
    if not zips:
        return []
    if limit is None:
        limit = current_app.config.get("MATCH_CANDIDATE_LIMIT", 20)

    providers = (
        eligible_providers_query(now)
        .filter(or_(
            Provider.service_areas.any(ProviderServiceArea.zip_code.in_(zips)),
            Provider.address_zip.in_(zips),
        ))
        .order_by(
            func.coalesce(Provider.rating_average, 0).desc(),
            func.coalesce(Provider.rating_count, 0).desc(),
            Provider.created_at.asc(),
        )
        .limit(limit)
        .all()
    )
    logger.debug("Matched %d providers for job %s (zips=%s)", len(providers), job.id, zips)
    return providers


def handle_no_candidates(job, now=None, previous_attempt=None):
    """Reset the job to unassigned with an extended window. Caller commits.

    *previous_attempt* is the job's dispatch lease before the current round.
    An unassigned job that was already matched once is a repeat miss: the
    window is left alone so it can lapse, and the customer is not told again.
    Returns True when the window was extended.
    """
    now = now or utcnow()
    hours = current_app.config.get("NO_CANDIDATE_EXTENSION_HOURS", 24)

    if job.assignment_status == "unassigned" and previous_attempt is not None:
        logger.info("Still no eligible providers for job %s", job.id)
        return False

    job.assignment_status = "unassigned"
    job.assignment_expires_at = now + timedelta(hours=hours)

    if job.customer_id:
        Notification.create_notification(
            recipient_id=job.customer_id,
            recipient_type="user",
            notification_type="system-alert",
            title="No Movers Available",
            message=(
                "We're currently looking for available movers in your area. "
                "We'll notify you as soon as someone accepts your job."
            ),
            related_id=job.id,
            priority="medium",
        )

    logger.info("No eligible providers for job %s; window extended %dh", job.id, hours)
    return True


def get_available_jobs_for_provider(provider, now=None):
    """Open, paid, future jobs inside the provider's service areas."""
    now = now or utcnow()
    if provider is None or provider.subscription_status != "active":
        return []

    area_filters = []
    for area in provider.service_areas:
        if area.zip_code:
            area_filters.append(Job.pickup_zip == area.zip_code)
            area_filters.append(Job.dropoff_zip == area.zip_code)
        if area.city and area.state:
            city = area.city.lower()
            area_filters.append(and_(func.lower(Job.pickup_city) == city, Job.pickup_state == area.state))
            area_filters.append(and_(func.lower(Job.dropoff_city) == city, Job.dropoff_state == area.state))

    if not area_filters:
        return []

    return (
        Job.query.filter(
            or_(*area_filters),
            Job.status == "pending-assignment",
            Job.assignment_status == "unassigned",
            Job.deposit_paid.is_(True),
            Job.move_date >= now,
        )
        .order_by(Job.move_date.asc())
        .all()
    )
