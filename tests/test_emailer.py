"""Tests for transactional email rendering and delivery."""

from unittest.mock import patch

import pytest

import config
import emailer


class TestRenderTemplate:

    def test_order_confirmation(self):
        out = emailer.render_template("order_confirmation", {
            "order_id": "AB12CD34",
            "customer_name": "Asha",
            "items": [{"name": "Silk <Saree>", "quantity": 2, "price": 1000}],
            "total": 2220,
        })

        assert out["subject"] == "Order Confirmed - AB12CD34"
        assert "Silk &lt;Saree&gt;" in out["html"]
        assert "₹2,220.00" in out["html"]

    def test_status_includes_tracking(self):
        out = emailer.render_template("order_status", {"order_id": "X1", "status": "shipped",
                                                       "tracking_number": "DEL42"})

        assert "DEL42" in out["html"]
        assert out["subject"] == "Order X1 is now shipped"

    def test_unknown_template(self):
        with pytest.raises(ValueError):
            emailer.render_template("birthday", {})


class TestSendEmail:

    def test_skipped_without_api_key(self, monkeypatch):
        monkeypatch.setattr(config, "RESEND_API_KEY", "")

        with patch("emailer.resend.Emails.send") as send:
            assert emailer.send_email("a@gmail.com", "Hi", "<p>Hi</p>") is None
            send.assert_not_called()

    def test_sends_through_resend(self, monkeypatch):
        monkeypatch.setattr(config, "RESEND_API_KEY", "re_test")

        with patch("emailer.resend.Emails.send", return_value={"id": "email_1"}) as send:
            assert emailer.send_email("a@gmail.com", "Hi", "<p>Hi</p>") == "email_1"

        params = send.call_args[0][0]
        assert params["to"] == ["a@gmail.com"]
        assert params["from"] == config.EMAIL_FROM

    def test_notify_swallows_provider_errors(self, monkeypatch):
        monkeypatch.setattr(config, "RESEND_API_KEY", "re_test")

        with patch("emailer.resend.Emails.send", side_effect=RuntimeError("provider down")):
            emailer.notify("welcome", "a@gmail.com", {"customer_name": "Asha"})

    def test_notify_without_recipient(self):
        with patch("emailer.send_template_email") as send:
            emailer.notify("welcome", None, {})
            send.assert_not_called()
