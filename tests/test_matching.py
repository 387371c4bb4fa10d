"""
Eligibility matching tests: location rule, account rules, ranking, no-candidate handling
"""
from datetime import timedelta

from matching import (
    find_eligible_providers, handle_no_candidates, get_available_jobs_for_provider,
)
from models import Notification, utcnow


class TestLocationRule:
    """Exact zip matching against service areas and business address"""

    def test_service_area_matches_pickup(self, provider_factory, job_factory):
        provider = provider_factory(service_zips=("10001",))
        job = job_factory(pickup_zip="10001", dropoff_zip="11201")

        assert [p.id for p in find_eligible_providers(job)] == [provider.id]

    def test_service_area_matches_dropoff(self, provider_factory, job_factory):
        provider = provider_factory(service_zips=("11201",))
        job = job_factory(pickup_zip="10001", dropoff_zip="11201")

        assert provider.id in [p.id for p in find_eligible_providers(job)]

    def test_business_address_zip_matches(self, provider_factory, job_factory):
        provider = provider_factory(service_zips=(), address_zip="10001")
        job = job_factory(pickup_zip="10001")

        assert provider.id in [p.id for p in find_eligible_providers(job)]

    def test_no_overlap_is_excluded(self, provider_factory, job_factory):
        provider_factory(service_zips=("90210",), address_zip="90211")
        job = job_factory(pickup_zip="10001", dropoff_zip="11201")

        assert find_eligible_providers(job) == []

    def test_zip_match_is_exact(self, provider_factory, job_factory):
        provider_factory(service_zips=("1000",), address_zip="100011")
        job = job_factory(pickup_zip="10001", dropoff_zip="10001")

        assert find_eligible_providers(job) == []


class TestAccountRules:
    """Only active, approved, subscribed providers are candidates"""

    def test_inactive_provider_excluded(self, provider_factory, job_factory):
        provider_factory(is_active=False)
        assert find_eligible_providers(job_factory()) == []

    def test_unapproved_provider_excluded(self, provider_factory, job_factory):
        provider_factory(status="pending")
        provider_factory(status="suspended")
        assert find_eligible_providers(job_factory()) == []

    def test_inactive_subscription_excluded(self, provider_factory, job_factory):
        provider_factory(subscription_status="inactive")
        assert find_eligible_providers(job_factory()) == []

    def test_expired_subscription_excluded(self, provider_factory, job_factory):
        provider_factory(subscription_expires_at=utcnow() - timedelta(minutes=1))
        provider_factory(subscription_expires_at=None)
        assert find_eligible_providers(job_factory()) == []

    def test_unverified_provider_still_matches(self, provider_factory, job_factory):
        provider = provider_factory(is_verified=False)
        assert [p.id for p in find_eligible_providers(job_factory())] == [provider.id]


class TestRanking:
    """Rating average descending, then rating count descending"""

    def test_higher_average_first(self, provider_factory, job_factory):
        low = provider_factory(rating_average=4.2, rating_count=50)
        high = provider_factory(rating_average=4.8, rating_count=120)

        ranked = find_eligible_providers(job_factory())
        assert [p.id for p in ranked] == [high.id, low.id]

    def test_count_breaks_ties(self, provider_factory, job_factory):
        few = provider_factory(rating_average=4.5, rating_count=3)
        many = provider_factory(rating_average=4.5, rating_count=300)

        ranked = find_eligible_providers(job_factory())
        assert [p.id for p in ranked] == [many.id, few.id]

    def test_result_is_capped(self, app, provider_factory, job_factory):
        for _ in range(25):
            provider_factory()

        ranked = find_eligible_providers(job_factory())
        assert len(ranked) == app.config["MATCH_CANDIDATE_LIMIT"] == 20


class TestNoCandidates:
    """Zero matches resets the job and informs authenticated customers"""

    def test_resets_and_extends_window(self, db, job_factory, customer):
        job = job_factory(customer_id=customer.id, assignment_status="alerted")
        now = utcnow()

        handle_no_candidates(job, now=now)
        db.session.commit()

        assert job.assignment_status == "unassigned"
        assert job.assignment_expires_at == now + timedelta(hours=24)
        notes = Notification.query.filter_by(recipient_id=customer.id).all()
        assert len(notes) == 1
        assert notes[0].title == "No Movers Available"
        assert notes[0].type == "system-alert"

    def test_repeat_miss_keeps_window_and_stays_quiet(self, db, job_factory, customer):
        first_expiry = utcnow() + timedelta(hours=5)
        job = job_factory(customer_id=customer.id, assignment_expires_at=first_expiry)

        extended = handle_no_candidates(job, previous_attempt=utcnow() - timedelta(hours=3))
        db.session.commit()

        assert extended is False
        assert job.assignment_expires_at == first_expiry
        assert Notification.query.filter_by(recipient_id=customer.id).count() == 0

    def test_guest_job_gets_no_notification(self, db, job_factory):
        job = job_factory(guest_email="guest@example.com")

        handle_no_candidates(job)
        db.session.commit()

        assert Notification.query.count() == 0


class TestAvailableJobs:
    """Provider-side view of open jobs"""

    def test_lists_open_jobs_in_service_area(self, provider_factory, job_factory):
        provider = provider_factory(service_zips=("10001",))
        open_job = job_factory(pickup_zip="10001")
        job_factory(pickup_zip="60601", dropoff_zip="60602", pickup_city="Chicago",
                    pickup_state="IL", dropoff_city="Chicago", dropoff_state="IL")

        jobs = get_available_jobs_for_provider(provider)
        assert [j.id for j in jobs] == [open_job.id]

    def test_city_and_state_match(self, provider_factory, job_factory):
        provider = provider_factory(service_zips=(), service_cities=(("Chicago", "IL"),))
        job = job_factory(pickup_zip="60601", pickup_city="chicago", pickup_state="IL")

        assert [j.id for j in get_available_jobs_for_provider(provider)] == [job.id]

    def test_excludes_unpaid_assigned_and_past_jobs(self, provider_factory, job_factory):
        provider = provider_factory()
        job_factory(deposit_paid=False, payment_status="pending")
        job_factory(assignment_status="alerted")
        job_factory(move_date=utcnow() - timedelta(days=1))
        job_factory(status="confirmed")

        assert get_available_jobs_for_provider(provider) == []

    def test_inactive_subscription_sees_nothing(self, provider_factory, job_factory):
        provider = provider_factory(subscription_status="expired")
        job_factory()

        assert get_available_jobs_for_provider(provider) == []
