"""Tests for the privacy-centre endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch

from consently.exceptions import InvalidCodeError, RateLimitError, RevokedError
from consently.services.identity_bridge import IssuedOtp, VerifiedOtp
from consently.services.mailer import MailerError
from tests.factories import NOW, make_widget

OTP_BODY = {"email": "jane@example.com", "visitorId": "CNST-AAAA-BBBB-CCCC", "widgetId": "dpdpa_test"}


def _issued():
    return IssuedOtp(otp=MagicMock(), code="123456", expiry_minutes=10, widget=make_widget())


class TestSendOtp:
    @patch("consently.routers.privacy_centre.identity_bridge.issue_otp", new_callable=AsyncMock)
    def test_sends_code(self, mock_issue, client, mailer):
        mock_issue.return_value = _issued()
        r = client.post("/api/privacy-centre/send-otp", json=OTP_BODY)
        assert r.status_code == 200
        assert r.json() == {"success": True, "message": "Verification code sent to your email", "expiresIn": 600}
        to, subject, html_body, text = mailer.send.call_args.args
        assert to == "jane@example.com"
        assert "123456" in html_body
        assert "Test Store" in subject

    def test_mail_not_configured(self, client, mailer):
        mailer.configured = False
        r = client.post("/api/privacy-centre/send-otp", json=OTP_BODY)
        assert r.status_code == 503
        assert r.json()["code"] == "EMAIL_NOT_CONFIGURED"

    @patch("consently.routers.privacy_centre.identity_bridge.issue_otp", new_callable=AsyncMock)
    def test_delivery_failure(self, mock_issue, client, mailer):
        mock_issue.return_value = _issued()
        mailer.send.side_effect = MailerError("Resend returned 500")
        r = client.post("/api/privacy-centre/send-otp", json=OTP_BODY)
        assert r.status_code == 500
        assert r.json()["code"] == "EMAIL_SEND_FAILED"

    @patch("consently.routers.privacy_centre.identity_bridge.issue_otp", new_callable=AsyncMock)
    def test_rate_limited(self, mock_issue, client, mailer):
        mock_issue.side_effect = RateLimitError(retry_after=1200, limit=3)
        r = client.post("/api/privacy-centre/send-otp", json=OTP_BODY)
        assert r.status_code == 429
        assert r.headers["Retry-After"] == "1200"
        assert r.json()["retryAfter"] == 1200
        mailer.send.assert_not_called()

    def test_bad_email(self, client):
        r = client.post("/api/privacy-centre/send-otp", json={**OTP_BODY, "email": "jane"})
        assert r.status_code == 400

    def test_empty_domain_label_rejected(self, client, mailer):
        r = client.post("/api/privacy-centre/send-otp", json={**OTP_BODY, "email": "x@y..z"})
        assert r.status_code == 400
        assert r.json()["details"][0]["loc"][-1] == "email"
        mailer.send.assert_not_called()


class TestVerifyOtp:
    @patch("consently.routers.privacy_centre.trigger_confirmation_email")
    @patch("consently.routers.privacy_centre.identity_bridge.verify_otp", new_callable=AsyncMock)
    def test_links_device(self, mock_verify, mock_trigger, client):
        mock_verify.return_value = VerifiedOtp(email_hash="h", linked_devices=2, verified_at=NOW, widget=make_widget())
        r = client.post("/api/privacy-centre/verify-otp", json={**OTP_BODY, "otpCode": "123456"})
        assert r.status_code == 200
        assert r.json()["linkedDevices"] == 2
        assert r.json()["verified_at"] == NOW.isoformat()
        mock_trigger.assert_called_once_with("jane@example.com", "Test Store", 2)

    @patch("consently.routers.privacy_centre.trigger_confirmation_email")
    @patch("consently.routers.privacy_centre.identity_bridge.verify_otp", new_callable=AsyncMock)
    def test_wrong_code(self, mock_verify, mock_trigger, client):
        mock_verify.side_effect = InvalidCodeError(remaining_attempts=2)
        r = client.post("/api/privacy-centre/verify-otp", json={**OTP_BODY, "otpCode": "000000"})
        assert r.status_code == 400
        assert r.json() == {
            "error": "Invalid OTP code.", "code": "INVALID_OTP", "remainingAttempts": 2, "maxAttemptsExceeded": False,
        }
        mock_trigger.assert_not_called()

    def test_code_must_be_six_digits(self, client):
        r = client.post("/api/privacy-centre/verify-otp", json={**OTP_BODY, "otpCode": "12ab"})
        assert r.status_code == 400


class TestConsentLookups:
    @patch("consently.routers.privacy_centre.identity_bridge.check_consent", new_callable=AsyncMock)
    def test_check_consent(self, mock_check, client):
        mock_check.return_value = {"hasConsent": False, "message": "No consent found"}
        r = client.get("/api/dpdpa/check-consent?widgetId=dpdpa_test&visitorId=CNST-AAAA-BBBB-CCCC")
        assert r.status_code == 200
        assert r.json()["hasConsent"] is False

    @patch("consently.routers.privacy_centre.identity_bridge.check_consent", new_callable=AsyncMock)
    def test_check_consent_rate_limited(self, mock_check, client, redis):
        redis.incr.return_value = 201
        r = client.get("/api/dpdpa/check-consent?widgetId=dpdpa_test&visitorId=CNST-AAAA-BBBB-CCCC",
                       headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert r.status_code == 429
        assert r.headers["X-RateLimit-Limit"] == "200"
        redis.incr.assert_awaited_with("ratelimit:check_consent:203.0.113.7")
        mock_check.assert_not_called()

    @patch("consently.routers.privacy_centre.identity_bridge.verify_consent_id", new_callable=AsyncMock)
    def test_verify_consent_id_strips(self, mock_verify, client):
        mock_verify.return_value = {"valid": True, "preferences": {}, "message": "ok"}
        r = client.post("/api/dpdpa/verify-consent-id", json={"consentID": " vis_abc123 ", "widgetId": "dpdpa_test"})
        assert r.status_code == 200
        assert mock_verify.call_args.args[1:] == ("vis_abc123", "dpdpa_test")

    @patch("consently.routers.privacy_centre.identity_bridge.verify_consent_id", new_callable=AsyncMock)
    def test_revoked_consent_id_is_gone(self, mock_verify, client):
        mock_verify.side_effect = RevokedError("Consent was revoked.", details={"revokedAt": NOW.isoformat()})
        r = client.post("/api/dpdpa/verify-consent-id",
                        json={"consentID": "CNST-AAAA-BBBB-CCCC", "widgetId": "dpdpa_test"})
        assert r.status_code == 410
        assert r.json()["revokedAt"] == NOW.isoformat()


class TestConsentByEmail:
    def test_invalid_email(self, client):
        r = client.get("/api/dpdpa/consent-by-email?email=nope&widgetId=dpdpa_test")
        assert r.status_code == 400
        assert r.json()["code"] == "INVALID_EMAIL"

    def test_double_dot_domain(self, client):
        r = client.get("/api/dpdpa/consent-by-email?email=x@y..z&widgetId=dpdpa_test")
        assert r.status_code == 400
        assert r.json()["code"] == "INVALID_EMAIL"

    @patch("consently.routers.privacy_centre.identity_bridge.consents_by_email", new_callable=AsyncMock)
    def test_lists_records(self, mock_lookup, client):
        mock_lookup.return_value = {"records": [], "totalRecords": 0, "emailHash": "h"}
        r = client.get("/api/dpdpa/consent-by-email?email=jane@example.com&widgetId=dpdpa_test")
        assert r.status_code == 200
        assert r.json()["totalRecords"] == 0

    @patch("consently.routers.privacy_centre.identity_bridge.revoke_by_email", new_callable=AsyncMock)
    def test_revoke(self, mock_revoke, client):
        mock_revoke.return_value = {"revokedCount": 2, "revokedVisitorIds": ["a", "b"], "message": "done"}
        r = client.post("/api/dpdpa/consent-by-email",
                        json={"email": "jane@example.com", "widgetId": "dpdpa_test", "action": "revoke"})
        assert r.status_code == 200
        assert r.json() == {"success": True, "data": mock_revoke.return_value}

    def test_unknown_action(self, client):
        r = client.post("/api/dpdpa/consent-by-email",
                        json={"email": "jane@example.com", "widgetId": "dpdpa_test", "action": "delete"})
        assert r.status_code == 400
