from unittest.mock import patch

from fieldcrm.services.twilio_service import compute_twilio_signature, verify_twilio_signature

WEBHOOK_URL = "http://localhost/reminders/sms-inbound"


async def test_health_skips_security_headers(client):
    response = await client.get("/health")
    assert response.json() == {"status": "healthy"}
    assert "X-Frame-Options" not in response.headers


async def test_api_responses_carry_security_headers(client):
    response = await client.get("/loyalty/tiers")
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "default-src 'none'" in response.headers["Content-Security-Policy"]


async def test_unknown_route_uses_error_envelope(client):
    response = await client.get("/nope")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "not_found"
    assert body["version"] == "v1"


async def test_validation_error_names_the_field(client):
    response = await client.post("/reminders", json={"customerId": "abc", "scheduledDate": "2030-01-01T00:00:00"})
    assert response.status_code == 400
    body = response.json()
    assert body["message"].startswith("customerId:")
    assert body["details"]["errors"][0]["field"] == "body.customerId"


def test_signature_matches_only_same_payload():
    params = {"From": "+15125550100", "Body": "STOP", "MessageSid": "SM1"}
    signature = compute_twilio_signature("token", WEBHOOK_URL, params)

    with patch("fieldcrm.services.twilio_service.decrypt_credential", return_value="token"):
        assert verify_twilio_signature(WEBHOOK_URL, params, signature) is True
        assert verify_twilio_signature(WEBHOOK_URL, {**params, "Body": "START"}, signature) is False
        assert verify_twilio_signature(WEBHOOK_URL, params, None) is False


def test_signature_check_without_token():
    with patch("fieldcrm.services.twilio_service.decrypt_credential", return_value=None):
        assert verify_twilio_signature(WEBHOOK_URL, {}, None) is True
        with patch("fieldcrm.services.twilio_service.IS_PRODUCTION", True):
            assert verify_twilio_signature(WEBHOOK_URL, {}, None) is False


async def test_inbound_sms_rejects_bad_signature(client):
    with patch("fieldcrm.services.twilio_service.decrypt_credential", return_value="token"):
        response = await client.post(
            "/reminders/sms-inbound",
            data={"From": "+15125550100", "Body": "STOP"},
            headers={"X-Twilio-Signature": "bogus"},
        )
    assert response.status_code == 401
    assert response.json()["error"] == "invalid_signature"


async def test_inbound_sms_accepts_valid_signature(client):
    params = {"From": "+15125550100", "Body": "HELP"}
    signature = compute_twilio_signature("token", WEBHOOK_URL, params)
    with patch("fieldcrm.services.twilio_service.decrypt_credential", return_value="token"):
        response = await client.post(
            "/reminders/sms-inbound", data=params, headers={"X-Twilio-Signature": signature}
        )
    assert response.status_code == 200


async def test_cron_endpoints_report_summaries(client):
    headers = {"Authorization": "Bearer test-cron-secret"}

    body = (await client.post("/cron/promotions", headers=headers)).json()
    assert body == {"ok": True, "expired": 0}

    body = (await client.post("/cron/opportunities", headers=headers)).json()
    assert body["ok"] is True
    assert body["expired"] == 0

    body = (await client.post("/cron/review-escalations", headers=headers)).json()
    assert body["escalated"] == 0
