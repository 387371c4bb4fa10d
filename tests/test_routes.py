"""
HTTP surface tests: auth, provider job routes, notifications, payment hook, admin
"""
from datetime import timedelta

import pytest

from auth import generate_token
from models import Job, JobAlert, Notification, utcnow


@pytest.fixture
def provider(provider_factory):
    return provider_factory(business_name="Route Movers")


@pytest.fixture
def provider_headers(provider, headers_for):
    return headers_for(provider.id, role="provider")


class TestHealthAndAuth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_security_headers(self, client):
        response = client.get("/api/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_missing_token(self, client):
        assert client.get("/api/jobs/alerts").status_code == 401

    def test_garbage_token(self, client):
        response = client.get("/api/jobs/alerts", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, app, client, provider):
        token = generate_token(provider.id, role="provider", expires_in=timedelta(seconds=-1))
        response = client.get("/api/jobs/alerts", headers={"Authorization": "Bearer " + token})
        assert response.status_code == 401

    def test_token_for_deleted_account(self, client, headers_for):
        response = client.get("/api/jobs/alerts", headers=headers_for("ghost", role="provider"))
        assert response.status_code == 401

    def test_customer_cannot_use_provider_routes(self, client, customer, headers_for):
        response = client.get("/api/jobs/alerts", headers=headers_for(customer.id))
        assert response.status_code == 403

    def test_admin_claim_requires_admin_row(self, client, customer, headers_for):
        response = client.get("/api/admin/scheduler", headers=headers_for(customer.id, role="admin"))
        assert response.status_code == 401


class TestJobRoutes:

    def test_available_jobs(self, client, provider_headers, job_factory):
        job = job_factory()

        response = client.get("/api/jobs/available", headers=provider_headers)

        data = response.get_json()
        assert response.status_code == 200
        assert data["count"] == 1
        assert data["jobs"][0]["id"] == job.id

    def test_list_alerts_paginated(self, client, provider, provider_headers, job_factory, alert_factory):
        for _ in range(3):
            alert_factory(job_factory(), provider)

        response = client.get("/api/jobs/alerts?limit=2", headers=provider_headers)

        data = response.get_json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert len(data["alerts"]) == 2
        assert data["alerts"][0]["job"]["pickup_address"]["zip_code"] == "10001"

    def test_list_alerts_status_filter(self, client, provider, provider_headers, job_factory, alert_factory):
        alert_factory(job_factory(), provider)
        alert_factory(job_factory(), provider, status="expired")

        response = client.get("/api/jobs/alerts?status=expired", headers=provider_headers)
        assert response.get_json()["total"] == 1

        response = client.get("/api/jobs/alerts?status=bogus", headers=provider_headers)
        assert response.status_code == 400

    def test_alerts_are_scoped_to_provider(self, client, provider_headers, provider_factory, job_factory, alert_factory):
        alert_factory(job_factory(), provider_factory())

        response = client.get("/api/jobs/alerts", headers=provider_headers)
        assert response.get_json()["total"] == 0

    def test_view_alert(self, client, provider, provider_headers, job_factory, alert_factory):
        alert = alert_factory(job_factory(), provider)

        response = client.post("/api/jobs/alerts/{}/view".format(alert.id), headers=provider_headers)

        assert response.status_code == 200
        assert response.get_json()["alert"]["viewed_at"] is not None

    def test_accept_alert(self, db, client, provider, provider_headers, job_factory, alert_factory):
        job = job_factory(assignment_status="alerted")
        alert = alert_factory(job, provider)

        response = client.post(
            "/api/jobs/alerts/{}/respond".format(alert.id),
            headers=provider_headers,
            json={"interested": True, "estimated_price": "575"},
        )

        data = response.get_json()
        assert response.status_code == 200
        assert data["message"] == "Job claimed successfully"
        assert data["alert"]["status"] == "claimed"
        assert data["alert"]["response"]["estimated_price"] == 575.0
        assert db.session.get(Job, job.id).provider_id == provider.id

    def test_respond_requires_boolean(self, client, provider, provider_headers, job_factory, alert_factory):
        alert = alert_factory(job_factory(), provider)
        url = "/api/jobs/alerts/{}/respond".format(alert.id)

        assert client.post(url, headers=provider_headers, json={}).status_code == 400
        assert client.post(url, headers=provider_headers, json={"interested": "yes"}).status_code == 400
        response = client.post(url, headers=provider_headers, json={"interested": True, "estimated_time": "soon"})
        assert response.status_code == 400

    def test_respond_twice_conflicts(self, client, provider, provider_headers, job_factory, alert_factory):
        alert = alert_factory(job_factory(), provider)
        url = "/api/jobs/alerts/{}/respond".format(alert.id)
        client.post(url, headers=provider_headers, json={"interested": False})

        response = client.post(url, headers=provider_headers, json={"interested": True})

        assert response.status_code == 409
        assert response.get_json()["code"] == "already_resolved"

    def test_lost_race_returns_conflict(self, client, provider, provider_headers, provider_factory,
                                        job_factory, alert_factory):
        job = job_factory(provider_id=provider_factory().id, assignment_status="assigned")
        alert = alert_factory(job, provider)

        response = client.post(
            "/api/jobs/alerts/{}/respond".format(alert.id),
            headers=provider_headers,
            json={"interested": True},
        )

        assert response.status_code == 409
        assert response.get_json()["error"] == "This job was already claimed"

    def test_unknown_alert_is_404(self, client, provider_headers):
        response = client.post(
            "/api/jobs/alerts/missing/respond", headers=provider_headers, json={"interested": True}
        )
        assert response.status_code == 404

    def test_start_and_complete(self, db, client, provider, provider_headers, job_factory, alert_factory):
        job = job_factory(provider_id=provider.id, assignment_status="assigned", status="confirmed")
        alert = alert_factory(job, provider, status="claimed")

        started = client.put("/api/jobs/alerts/{}/start".format(alert.id), headers=provider_headers)
        assert started.status_code == 200
        assert started.get_json()["job"]["status"] == "in-progress"

        completed = client.put(
            "/api/jobs/alerts/{}/complete".format(alert.id),
            headers=provider_headers,
            json={"final_cost": 700, "completion_notes": "All good"},
        )
        data = completed.get_json()
        assert completed.status_code == 200
        assert data["alert"]["status"] == "completed"
        assert data["summary"]["final_cost"] == 700.0
        assert db.session.get(Job, job.id).completion_notes == "All good"

    def test_complete_unclaimed_alert(self, client, provider, provider_headers, job_factory, alert_factory):
        alert = alert_factory(job_factory(), provider)

        response = client.put("/api/jobs/alerts/{}/complete".format(alert.id), headers=provider_headers, json={})

        assert response.status_code == 400
        assert response.get_json()["code"] == "not_claimed"

    def test_complete_rejects_bad_cost(self, client, provider, provider_headers, job_factory, alert_factory):
        alert = alert_factory(job_factory(), provider, status="claimed")

        response = client.put(
            "/api/jobs/alerts/{}/complete".format(alert.id),
            headers=provider_headers,
            json={"final_cost": "lots"},
        )
        assert response.status_code == 400


class TestNotificationRoutes:

    def test_list_hides_expired_and_counts_unread(self, client, customer, headers_for, notification_factory):
        notification_factory(customer.id, title="Fresh")
        notification_factory(customer.id, title="Read", is_read=True)
        notification_factory(customer.id, title="Stale", expires_at=utcnow() - timedelta(days=1))

        response = client.get("/api/notifications", headers=headers_for(customer.id))

        data = response.get_json()
        assert response.status_code == 200
        assert {n["title"] for n in data["notifications"]} == {"Fresh", "Read"}
        assert data["unread_count"] == 1
        assert data["total"] == 2

    def test_unread_only(self, client, customer, headers_for, notification_factory):
        notification_factory(customer.id, title="Fresh")
        notification_factory(customer.id, title="Read", is_read=True)

        response = client.get("/api/notifications?unread_only=true", headers=headers_for(customer.id))
        assert [n["title"] for n in response.get_json()["notifications"]] == ["Fresh"]

    def test_provider_inbox_is_separate(self, client, provider, provider_headers, notification_factory):
        notification_factory(provider.id, recipient_type="provider", type="job-alert", title="New job")
        notification_factory(provider.id, recipient_type="user", title="Not mine")

        response = client.get("/api/notifications", headers=provider_headers)
        assert [n["title"] for n in response.get_json()["notifications"]] == ["New job"]

    def test_mark_read(self, db, client, customer, headers_for, notification_factory):
        note = notification_factory(customer.id)

        response = client.put("/api/notifications/{}/read".format(note.id), headers=headers_for(customer.id))

        assert response.status_code == 200
        assert db.session.get(Notification, note.id).is_read is True

    def test_mark_all_read_and_unread_count(self, client, customer, headers_for, notification_factory):
        headers = headers_for(customer.id)
        notification_factory(customer.id)
        notification_factory(customer.id)

        assert client.get("/api/notifications/unread-count", headers=headers).get_json()["unread_count"] == 2
        assert client.put("/api/notifications/read-all", headers=headers).get_json()["updated"] == 2
        assert client.get("/api/notifications/unread-count", headers=headers).get_json()["unread_count"] == 0

    def test_delete(self, db, client, customer, headers_for, notification_factory):
        note = notification_factory(customer.id)

        response = client.delete("/api/notifications/{}".format(note.id), headers=headers_for(customer.id))

        assert response.status_code == 200
        assert db.session.get(Notification, note.id) is None

    def test_other_users_notification_is_404(self, client, customer, customer_factory, headers_for,
                                             notification_factory):
        note = notification_factory(customer_factory().id)
        headers = headers_for(customer.id)

        assert client.put("/api/notifications/{}/read".format(note.id), headers=headers).status_code == 404
        assert client.delete("/api/notifications/{}".format(note.id), headers=headers).status_code == 404


class TestDepositHook:

    def test_requires_api_key(self, client, job_factory):
        job = job_factory(deposit_paid=False, payment_status="pending")
        response = client.post("/api/payments/deposit-confirmed", json={"job_id": job.id})
        assert response.status_code == 401

    def test_requires_job_id(self, client, api_key_headers):
        response = client.post("/api/payments/deposit-confirmed", headers=api_key_headers, json={})
        assert response.status_code == 400

    def test_unknown_job(self, client, api_key_headers):
        response = client.post(
            "/api/payments/deposit-confirmed", headers=api_key_headers, json={"job_id": "missing"}
        )
        assert response.status_code == 404

    def test_confirms_and_dispatches(self, client, api_key_headers, provider_factory, job_factory):
        provider_factory()
        job = job_factory(deposit_paid=False, payment_status="pending")

        response = client.post(
            "/api/payments/deposit-confirmed",
            headers=api_key_headers,
            json={"job_id": job.id, "payment_intent_id": "pi_abc"},
        )

        data = response.get_json()
        assert response.status_code == 200
        assert data["job"]["deposit"]["paid"] is True
        assert data["dispatch"]["alerts_sent"] == 1


class TestAdminRoutes:

    def test_assign(self, db, client, admin, headers_for, provider, job_factory):
        job = job_factory()

        response = client.put(
            "/api/admin/jobs/{}/assign".format(job.id),
            headers=headers_for(admin.id, role="admin"),
            json={"provider_id": provider.id},
        )

        assert response.status_code == 200
        assert response.get_json()["job"]["provider_id"] == provider.id
        assert db.session.get(Job, job.id).assigned_by_id == admin.id

    def test_assign_requires_provider_id(self, client, admin, headers_for, job_factory):
        response = client.put(
            "/api/admin/jobs/{}/assign".format(job_factory().id),
            headers=headers_for(admin.id, role="admin"),
            json={},
        )
        assert response.status_code == 400

    def test_assign_taken_job_conflicts(self, client, admin, headers_for, provider, provider_factory, job_factory):
        job = job_factory(provider_id=provider_factory().id, assignment_status="assigned")

        response = client.put(
            "/api/admin/jobs/{}/assign".format(job.id),
            headers=headers_for(admin.id, role="admin"),
            json={"provider_id": provider.id},
        )
        assert response.status_code == 409

    def test_dispatch(self, client, admin, headers_for, provider, job_factory):
        job = job_factory()

        response = client.post(
            "/api/admin/jobs/{}/dispatch".format(job.id), headers=headers_for(admin.id, role="admin")
        )

        assert response.status_code == 200
        assert response.get_json()["dispatch"]["provider_ids"] == [provider.id]
        assert JobAlert.query.filter_by(job_id=job.id).count() == 1

    def test_dispatch_ineligible_job(self, client, admin, headers_for, job_factory):
        job = job_factory(deposit_paid=False, payment_status="pending")

        response = client.post(
            "/api/admin/jobs/{}/dispatch".format(job.id), headers=headers_for(admin.id, role="admin")
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "not_eligible"

    def test_scheduler_status(self, client, admin, headers_for):
        response = client.get("/api/admin/scheduler", headers=headers_for(admin.id, role="admin"))
        assert response.get_json()["scheduler"] == {"running": False, "jobs": []}

    def test_run_task(self, client, admin, headers_for, job_factory, provider_factory, alert_factory):
        alert_factory(job_factory(), provider_factory(), expires_at=utcnow() - timedelta(minutes=1))

        response = client.post(
            "/api/admin/scheduler/sweep_expired_alerts/run", headers=headers_for(admin.id, role="admin")
        )

        assert response.status_code == 200
        assert response.get_json()["stats"]["processed"] == 1

    def test_run_unknown_task(self, client, admin, headers_for):
        response = client.post("/api/admin/scheduler/nope/run", headers=headers_for(admin.id, role="admin"))
        assert response.status_code == 404

    def test_non_admin_forbidden(self, client, customer, headers_for, job_factory):
        response = client.post(
            "/api/admin/jobs/{}/dispatch".format(job_factory().id), headers=headers_for(customer.id)
        )
        assert response.status_code == 403
