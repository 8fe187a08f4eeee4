"""Tests for share notifications and email templates."""

import pytest

import api.notifications as notifications_module
from config import settings
from sharing import rate_limit
from sharing.rate_limit import MemoryRateLimiter
from notify.mailer import EmailDeliveryError
from notify.templates import otp_email, share_notification_email


class TestTemplates:
    def test_otp_subjects(self):
        assert otp_email("123456", "signup")[0] == "Verify Your PDF Culture Email"
        assert otp_email("123456", "password-reset")[0] == "Reset Your PDF Culture Password"

    def test_otp_body_contains_code(self):
        _, body = otp_email("482913", "signup")
        assert "482913" in body
        assert "5 minutes" in body

    def test_share_subject(self):
        subject, _ = share_notification_email("a@example.com", "Plan.pdf", "https://x/p", False)
        assert subject == "a@example.com shared a PDF with you: Plan.pdf"

    def test_share_body_escapes_values(self):
        _, body = share_notification_email("a@example.com", "<script>x</script>", "https://x/p?a=1&b=2", True)
        assert "<script>" not in body
        assert "&lt;script&gt;" in body
        assert 'href="https://x/p?a=1&amp;b=2"' in body

    def test_save_permission_marker(self):
        _, allowed = share_notification_email("a@example.com", "p", "https://x", True)
        _, denied = share_notification_email("a@example.com", "p", "https://x", False)
        assert "Download and save PDF ✓" in allowed
        assert "Download and save PDF ✗" in denied


class TestShareNotificationEndpoint:
    @pytest.fixture
    async def shared_doc(self, registered_user, make_document):
        return await make_document(
            registered_user,
            name="Plan.pdf",
            access_users=["viewer@example.com", {"email": "saver@example.com", "canSave": True}],
        )

    async def _notify(self, test_client, headers, recipient, pdf_id):
        return await test_client.post(
            "/api/share-notification",
            json={"recipientEmail": recipient, "pdfId": pdf_id},
            headers=headers,
        )

    async def test_sends_from_caller_with_stored_details(self, test_client, auth_headers, outbox, shared_doc):
        resp = await self._notify(test_client, auth_headers, "saver@example.com", shared_doc.id)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert outbox[0]["to"] == "saver@example.com"
        assert outbox[0]["subject"] == "test@example.com shared a PDF with you: Plan.pdf"
        assert f"{settings.public_base_url}/shared/{shared_doc.id}" in outbox[0]["html"]
        assert "Download and save PDF ✓" in outbox[0]["html"]

    async def test_save_flag_follows_recipient_access(self, test_client, auth_headers, outbox, shared_doc):
        await self._notify(test_client, auth_headers, "Viewer@Example.com", shared_doc.id)
        assert outbox[0]["to"] == "viewer@example.com"
        assert "Download and save PDF ✗" in outbox[0]["html"]

    async def test_recipient_without_access_is_forbidden(self, test_client, auth_headers, outbox, shared_doc):
        resp = await self._notify(test_client, auth_headers, "stranger@example.com", shared_doc.id)
        assert resp.status_code == 403
        assert outbox == []

    async def test_public_document_any_recipient(self, test_client, registered_user, auth_headers, outbox, make_document):
        doc = await make_document(registered_user, is_publicly_shared=True)
        resp = await self._notify(test_client, auth_headers, "anyone@example.com", doc.id)
        assert resp.status_code == 200

    async def test_non_owner_cannot_notify(self, test_client, make_user, outbox, shared_doc):
        saver = await make_user("saver@example.com")
        resp = await self._notify(test_client, saver["headers"], "viewer@example.com", shared_doc.id)
        assert resp.status_code == 403
        assert outbox == []

    async def test_unknown_document_is_404(self, test_client, auth_headers, outbox):
        resp = await self._notify(test_client, auth_headers, "friend@example.com", "missing")
        assert resp.status_code == 404

    async def test_requires_auth(self, test_client, outbox, shared_doc):
        resp = await test_client.post(
            "/api/share-notification",
            json={"recipientEmail": "viewer@example.com", "pdfId": shared_doc.id},
        )
        assert resp.status_code == 401
        assert outbox == []

    async def test_missing_fields_return_400(self, test_client, auth_headers, outbox):
        resp = await test_client.post(
            "/api/share-notification", json={"recipientEmail": "friend@example.com"}, headers=auth_headers
        )
        assert resp.status_code == 400

    async def test_rate_limited_per_caller(self, test_client, auth_headers, outbox, shared_doc, monkeypatch):
        monkeypatch.setattr(rate_limit, "notify_limiter", MemoryRateLimiter("notify", limit=2, window_seconds=60))
        codes = [
            (await self._notify(test_client, auth_headers, "viewer@example.com", shared_doc.id)).status_code
            for _ in range(3)
        ]
        assert codes == [200, 200, 429]
        assert len(outbox) == 2

    async def test_delivery_failure_returns_500(self, test_client, auth_headers, shared_doc, monkeypatch):
        async def _failing_send(to, subject, html, retries=2):
            raise EmailDeliveryError(to, 3)

        monkeypatch.setattr(notifications_module, "send_email", _failing_send)
        resp = await self._notify(test_client, auth_headers, "viewer@example.com", shared_doc.id)
        assert resp.status_code == 500
        assert "viewer@example.com" not in resp.json()["detail"]
