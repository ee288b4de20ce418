"""
RegenMark API Tests — HTTP surface of both blueprints:
  - Identity / reviewer guards (401 / 403)
  - Full walk: request → review → approve → scorecard
  - Error mapping: 400 missing fields, 404, 409 duplicate / terminal, 422 validation
  - Multipart evidence upload
  - Product score, revocation, notifications, expiry sweep job, health
"""

import io

import pytest

# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

EVIDENCE = {"name": "Water audit", "url": "/uploads/regenmarks/water-audit.pdf", "file_size": 1024}


def _request(client, headers, owner_id, cert_type="WATER_GUARDIAN", **extra):
    r = client.post("/api/v1/regenmarks/evaluations", headers=headers, json={
        "owner_id": owner_id, "type": cert_type, "documents": [EVIDENCE], **extra,
    })
    assert r.status_code == 201, r.get_json()
    return r.get_json()


def _review(client, headers, evaluation_id):
    r = client.post(f"/api/v1/admin/regenmarks/evaluations/{evaluation_id}/review", headers=headers)
    assert r.status_code == 200, r.get_json()
    return r.get_json()


def _evaluate(client, headers, evaluation_id, **body):
    return client.post("/api/v1/admin/regenmarks/evaluate", headers=headers,
                       json={"evaluation_id": evaluation_id, **body})


@pytest.fixture()
def in_review(client, owner, vendor_headers, reviewer_headers):
    evaluation = _request(client, vendor_headers, owner.id)
    _review(client, reviewer_headers, evaluation["id"])
    return evaluation["id"]


# ═══════════════════════════════════════════════════════════════════════════
# Guards
# ═══════════════════════════════════════════════════════════════════════════


class TestGuards:

    def test_request_needs_identity(self, client, owner):
        r = client.post("/api/v1/regenmarks/evaluations",
                        json={"owner_id": owner.id, "type": "CARBON_SAVER"})
        assert r.status_code == 401

    def test_admin_needs_identity(self, client):
        assert client.get("/api/v1/admin/regenmarks/evaluations").status_code == 401

    def test_vendor_cannot_review(self, client, vendor_headers):
        r = client.get("/api/v1/admin/regenmarks/evaluations", headers=vendor_headers)
        assert r.status_code == 403

    def test_admin_role_allowed(self, client):
        r = client.get("/api/v1/admin/regenmarks/evaluations",
                       headers={"X-User-Id": "ops", "X-User-Role": "Admin"})
        assert r.status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# Owners
# ═══════════════════════════════════════════════════════════════════════════


class TestOwnersApi:

    def test_create(self, client, vendor_headers):
        r = client.post("/api/v1/regenmarks/owners", headers=vendor_headers, json={"name": "Eco Shop"})
        assert r.status_code == 201
        body = r.get_json()
        assert body["user_id"] == "vendor-1"
        assert body["tier"] == "VERDE_CLARO"

    def test_name_required(self, client, vendor_headers):
        r = client.post("/api/v1/regenmarks/owners", headers=vendor_headers, json={})
        assert r.status_code == 400

    def test_name_must_be_text(self, client, vendor_headers):
        r = client.post("/api/v1/regenmarks/owners", headers=vendor_headers, json={"name": 42})
        assert r.status_code == 400

    def test_bad_kind(self, client, vendor_headers):
        r = client.post("/api/v1/regenmarks/owners", headers=vendor_headers,
                        json={"name": "X", "kind": "planet"})
        assert r.status_code == 422

    def test_unknown_scorecard(self, client):
        assert client.get("/api/v1/regenmarks/owners/999/scorecard").status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# Evaluations
# ═══════════════════════════════════════════════════════════════════════════


class TestEvaluationsApi:

    def test_request(self, client, owner, vendor_headers):
        body = _request(client, vendor_headers, owner.id)
        assert body["status"] == "SUBMITTED"
        assert body["requested_by"] == "vendor-1"
        assert body["documents"][0]["name"] == "Water audit"
        assert body["available_actions"] == ["score_metrics", "start_review"]

    def test_missing_fields(self, client, owner, vendor_headers):
        r = client.post("/api/v1/regenmarks/evaluations", headers=vendor_headers,
                        json={"type": "CARBON_SAVER"})
        assert r.status_code == 400
        r = client.post("/api/v1/regenmarks/evaluations", headers=vendor_headers,
                        json={"owner_id": owner.id})
        assert r.status_code == 400

    def test_bad_type(self, client, owner, vendor_headers):
        r = client.post("/api/v1/regenmarks/evaluations", headers=vendor_headers,
                        json={"owner_id": owner.id, "type": "SOLAR"})
        assert r.status_code == 422

    def test_unknown_owner(self, client, vendor_headers):
        r = client.post("/api/v1/regenmarks/evaluations", headers=vendor_headers,
                        json={"owner_id": 999, "type": "CARBON_SAVER"})
        assert r.status_code == 404

    def test_duplicate_is_conflict(self, client, owner, vendor_headers):
        _request(client, vendor_headers, owner.id)
        r = client.post("/api/v1/regenmarks/evaluations", headers=vendor_headers,
                        json={"owner_id": owner.id, "type": "WATER_GUARDIAN"})
        assert r.status_code == 409
        assert r.get_json()["details"] == {"owner_id": owner.id, "type": "WATER_GUARDIAN"}

    def test_get(self, client, owner, vendor_headers):
        created = _request(client, vendor_headers, owner.id)
        r = client.get(f"/api/v1/regenmarks/evaluations/{created['id']}")
        assert r.status_code == 200
        assert r.get_json()["id"] == created["id"]

    def test_get_missing(self, client):
        assert client.get("/api/v1/regenmarks/evaluations/9999").status_code == 404

    def test_pending_then_submit(self, client, owner, vendor_headers):
        r = client.post("/api/v1/regenmarks/evaluations", headers=vendor_headers,
                        json={"owner_id": owner.id, "type": "HUMAN_FIRST"})
        evaluation = r.get_json()
        assert evaluation["status"] == "PENDING"

        r = client.post(f"/api/v1/regenmarks/evaluations/{evaluation['id']}/submit", headers=vendor_headers)
        assert r.status_code == 422

        r = client.post(f"/api/v1/regenmarks/evaluations/{evaluation['id']}/documents",
                        headers=vendor_headers, json=EVIDENCE)
        assert r.status_code == 201
        assert len(r.get_json()["documents"]) == 1

        r = client.post(f"/api/v1/regenmarks/evaluations/{evaluation['id']}/submit", headers=vendor_headers)
        assert r.status_code == 200
        assert r.get_json()["status"] == "SUBMITTED"

    def test_document_batch_is_all_or_nothing(self, client, owner, vendor_headers):
        r = client.post("/api/v1/regenmarks/evaluations", headers=vendor_headers,
                        json={"owner_id": owner.id, "type": "HUMAN_FIRST"})
        evaluation_id = r.get_json()["id"]

        r = client.post(f"/api/v1/regenmarks/evaluations/{evaluation_id}/documents", headers=vendor_headers,
                        json={"documents": [EVIDENCE, {"name": "missing-url.pdf"}]})
        assert r.status_code == 422
        r = client.get(f"/api/v1/regenmarks/evaluations/{evaluation_id}")
        assert r.get_json()["documents"] == []

    def test_multipart_upload(self, client, owner, vendor_headers):
        r = client.post(
            "/api/v1/regenmarks/evaluations",
            headers=vendor_headers,
            data={
                "owner_id": str(owner.id),
                "type": "carbon_saver",
                "metrics": '{"carbonNeutral": true, "emissionsReduction": 80}',
                "document_1": (io.BytesIO(b"%PDF-1.4 carbon"), "carbon audit.pdf"),
            },
            content_type="multipart/form-data",
        )
        assert r.status_code == 201, r.get_json()
        body = r.get_json()
        assert body["status"] == "SUBMITTED"
        assert body["metrics"] == {"carbonNeutral": True, "emissionsReduction": 80}
        doc = body["documents"][0]
        assert doc["file_name"] == "carbon_audit.pdf"
        assert doc["file_size"] == 15
        assert doc["url"].startswith("/uploads/regenmarks/CARBON_SAVER_")

    def test_multipart_bad_metrics(self, client, owner, vendor_headers):
        r = client.post(
            "/api/v1/regenmarks/evaluations",
            headers=vendor_headers,
            data={
                "owner_id": str(owner.id),
                "type": "CARBON_SAVER",
                "metrics": "{not json",
                "document_1": (io.BytesIO(b"x"), "a.pdf"),
            },
            content_type="multipart/form-data",
        )
        assert r.status_code == 422


# ═══════════════════════════════════════════════════════════════════════════
# Review
# ═══════════════════════════════════════════════════════════════════════════


class TestReviewApi:

    def test_full_walk(self, client, owner, vendor_headers, reviewer_headers):
        evaluation = _request(client, vendor_headers, owner.id,
                              metrics={"waterSavingPercentage": 90, "certified": True})

        r = client.post(f"/api/v1/admin/regenmarks/evaluations/{evaluation['id']}/score",
                        headers=reviewer_headers, json={})
        assert r.status_code == 200
        assert r.get_json()["ai_score"] == 46

        _review(client, reviewer_headers, evaluation["id"])
        r = _evaluate(client, reviewer_headers, evaluation["id"],
                      approved=True, review_score=75.0, reviewer_notes="Solid metering data")
        assert r.status_code == 200, r.get_json()
        body = r.get_json()
        assert body["evaluation"]["status"] == "APPROVED"
        assert body["certification"]["score"] == 75
        assert body["certification"]["status"] == "ACTIVE"
        assert body["aggregate"]["total_score"] == 75
        assert body["aggregate"]["tier"] == "ESTRELLA_VERDE"
        assert body["change"]["tier_up"] is True

        card = client.get(f"/api/v1/regenmarks/owners/{owner.id}/scorecard").get_json()
        assert card["aggregate"]["total_score"] == 75
        assert card["owner"]["regen_score"] == 75
        assert card["certifications"][0]["verified_by"] == "reviewer-1"

    def test_missing_fields(self, client, reviewer_headers, in_review):
        assert _evaluate(client, reviewer_headers, None, approved=True).status_code == 400
        r = client.post("/api/v1/admin/regenmarks/evaluate", headers=reviewer_headers,
                        json={"evaluation_id": in_review})
        assert r.status_code == 400

    def test_below_threshold(self, client, reviewer_headers, in_review):
        r = _evaluate(client, reviewer_headers, in_review, approved=True, review_score=59)
        assert r.status_code == 422

    def test_fractional_score(self, client, reviewer_headers, in_review):
        r = _evaluate(client, reviewer_headers, in_review, approved=True, review_score=75.5)
        assert r.status_code == 422

    def test_reject_needs_feedback(self, client, reviewer_headers, in_review):
        r = _evaluate(client, reviewer_headers, in_review, approved=False)
        assert r.status_code == 422

    def test_reject_feedback_must_be_text(self, client, reviewer_headers, in_review):
        r = _evaluate(client, reviewer_headers, in_review, approved=False, feedback=123)
        assert r.status_code == 422

    def test_reject(self, client, owner, reviewer_headers, in_review):
        r = _evaluate(client, reviewer_headers, in_review, approved=False, feedback="Need 12 months of data")
        assert r.status_code == 200
        assert r.get_json()["evaluation"]["status"] == "REJECTED"
        card = client.get(f"/api/v1/regenmarks/owners/{owner.id}/scorecard").get_json()
        assert card["aggregate"]["total_score"] == 0

    def test_second_finalisation_conflicts(self, client, reviewer_headers, in_review):
        assert _evaluate(client, reviewer_headers, in_review, approved=True, review_score=80).status_code == 200
        r = _evaluate(client, reviewer_headers, in_review, approved=False, feedback="Too late")
        assert r.status_code == 409
        assert r.get_json()["error"] == "Evaluation already processed"

    def test_approve_before_review(self, client, owner, vendor_headers, reviewer_headers):
        evaluation = _request(client, vendor_headers, owner.id)
        r = _evaluate(client, reviewer_headers, evaluation["id"], approved=True, review_score=80)
        assert r.status_code == 409

    def test_evaluate_missing(self, client, reviewer_headers):
        r = _evaluate(client, reviewer_headers, 9999, approved=True, review_score=80)
        assert r.status_code == 404

    def test_queue(self, client, owner, vendor_headers, reviewer_headers):
        _request(client, vendor_headers, owner.id)
        _request(client, vendor_headers, owner.id, "HUMANE_HERO")
        r = client.get("/api/v1/admin/regenmarks/evaluations?type=HUMANE_HERO", headers=reviewer_headers)
        body = r.get_json()
        assert body["total"] == 1
        assert body["items"][0]["type"] == "HUMANE_HERO"

        r = client.get("/api/v1/admin/regenmarks/evaluations?limit=1", headers=reviewer_headers)
        assert len(r.get_json()["items"]) == 1
        assert r.get_json()["total"] == 2


# ═══════════════════════════════════════════════════════════════════════════
# Certifications + notifications
# ═══════════════════════════════════════════════════════════════════════════


class TestCertificationsApi:

    def test_revoke(self, client, owner, reviewer_headers, in_review):
        body = _evaluate(client, reviewer_headers, in_review, approved=True, review_score=80).get_json()
        cert_id = body["certification"]["id"]

        r = client.post(f"/api/v1/admin/regenmarks/certifications/{cert_id}/revoke",
                        headers=reviewer_headers, json={"reason": "Falsified meter readings"})
        assert r.status_code == 200
        assert r.get_json()["certification"]["status"] == "REVOKED"
        assert r.get_json()["aggregate"]["total_score"] == 0

        again = client.post(f"/api/v1/admin/regenmarks/certifications/{cert_id}/revoke",
                            headers=reviewer_headers, json={"reason": "Again"})
        assert again.status_code == 409

    def test_revoke_needs_reason(self, client, reviewer_headers, in_review):
        body = _evaluate(client, reviewer_headers, in_review, approved=True, review_score=80).get_json()
        r = client.post(f"/api/v1/admin/regenmarks/certifications/{body['certification']['id']}/revoke",
                        headers=reviewer_headers, json={})
        assert r.status_code == 422

    def test_revoke_reason_must_be_text(self, client, reviewer_headers, in_review):
        body = _evaluate(client, reviewer_headers, in_review, approved=True, review_score=80).get_json()
        r = client.post(f"/api/v1/admin/regenmarks/certifications/{body['certification']['id']}/revoke",
                        headers=reviewer_headers, json={"reason": 5})
        assert r.status_code == 422

    def test_notifications(self, client, owner, vendor_headers, reviewer_headers, in_review):
        _evaluate(client, reviewer_headers, in_review, approved=True, review_score=80)

        r = client.get(f"/api/v1/regenmarks/owners/{owner.id}/notifications", headers=vendor_headers)
        body = r.get_json()
        kinds = [n["kind"] for n in body["items"]]
        assert body["total"] == 3
        assert set(kinds) == {"REGENMARK_SUBMITTED", "REGENMARK_APPROVED", "TIER_CHANGED"}

        first = body["items"][0]["id"]
        r = client.post(f"/api/v1/regenmarks/notifications/{first}/read", headers=vendor_headers)
        assert r.status_code == 200
        assert r.get_json()["is_read"] is True

        r = client.get(f"/api/v1/regenmarks/owners/{owner.id}/notifications?unread=1", headers=vendor_headers)
        assert r.get_json()["total"] == 2

    def test_read_missing_notification(self, client, vendor_headers):
        r = client.post("/api/v1/regenmarks/notifications/9999/read", headers=vendor_headers)
        assert r.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# Scoring, jobs, health
# ═══════════════════════════════════════════════════════════════════════════


class TestMiscApi:

    def test_product_score(self, client):
        r = client.post("/api/v1/regenmarks/score/product", json={
            "metrics": {"co2Reduction": 50, "waterSaving": 40, "energyEfficiency": 60},
        })
        assert r.status_code == 200
        assert r.get_json()["score"] == 50

    def test_product_score_clamped(self, client):
        r = client.post("/api/v1/regenmarks/score/product", json={
            "metrics": {"co2Reduction": 500, "waterSaving": "lots", "energyEfficiency": -3},
        })
        assert r.get_json()["score"] == 100

    def test_product_score_huge_integer(self, client):
        r = client.post("/api/v1/regenmarks/score/product", json={"metrics": {"co2Reduction": 10**400}})
        assert r.status_code == 200
        assert r.get_json()["score"] == 100

    def test_jobs(self, client, reviewer_headers):
        r = client.get("/api/v1/admin/regenmarks/jobs", headers=reviewer_headers)
        assert r.status_code == 200
        assert [j["job_name"] for j in r.get_json()["jobs"]] == ["expiry_sweep"]

    def test_run_sweep(self, client, reviewer_headers):
        r = client.post("/api/v1/admin/regenmarks/jobs/expiry-sweep", headers=reviewer_headers)
        assert r.status_code == 200
        assert r.get_json()["status"] == "success"
        assert r.get_json()["result"]["checked"] == 0

    def test_health(self, client):
        r = client.get("/api/v1/health")
        assert r.status_code == 200
        assert r.get_json()["status"] == "ok"
