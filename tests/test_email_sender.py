"""Tests for mealdispatch/notification/email_sender.py.

All SMTP calls are mocked -- no real server needed.
"""
from __future__ import annotations

import email as email_mod
import smtplib
from unittest.mock import MagicMock, patch

import pytest

from mealdispatch.campaign.errors import ChannelError
from mealdispatch.notification.email_sender import OutboundMessage, SmtpEmailChannel
from tests.fakes import make_messages


def _mock_server(mock_smtp_cls) -> MagicMock:
    mock_server = MagicMock()
    mock_smtp_cls.return_value.__enter__ = MagicMock(return_value=mock_server)
    mock_smtp_cls.return_value.__exit__ = MagicMock(return_value=False)
    return mock_server


# ===========================================================================
# send_batch
# ===========================================================================

class TestSendBatch:
    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_all_messages_sent_over_one_session(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        channel = SmtpEmailChannel(smtp_host="localhost", smtp_port=25)

        receipts = channel.send_batch(make_messages(3))

        mock_smtp_cls.assert_called_once_with("localhost", 25, timeout=10.0)
        assert mock_server.sendmail.call_count == 3
        assert [r.status for r in receipts] == ["SENT", "SENT", "SENT"]
        assert [r.recipient_id for r in receipts] == ["user-0000", "user-0001", "user-0002"]
        assert receipts[0].smtp_response == "250 OK"

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_empty_batch_opens_no_session(self, mock_smtp_cls):
        channel = SmtpEmailChannel(smtp_host="localhost")

        assert channel.send_batch([]) == []
        mock_smtp_cls.assert_not_called()

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_refused_recipient_fails_alone(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        mock_server.sendmail.side_effect = [
            None,
            smtplib.SMTPRecipientsRefused({"user1@mealmail.io": (550, b"No such user")}),
            None,
        ]
        channel = SmtpEmailChannel(smtp_host="localhost")

        receipts = channel.send_batch(make_messages(3))

        assert [r.status for r in receipts] == ["SENT", "FAILED", "SENT"]
        assert receipts[1].smtp_response is not None

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_data_error_fails_alone(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        mock_server.sendmail.side_effect = [smtplib.SMTPDataError(554, b"Message rejected"), None]
        channel = SmtpEmailChannel(smtp_host="localhost")

        receipts = channel.send_batch(make_messages(2))

        assert [r.status for r in receipts] == ["FAILED", "SENT"]

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_connection_failure_raises_channel_error(self, mock_smtp_cls):
        mock_smtp_cls.side_effect = ConnectionRefusedError("Connection refused")
        channel = SmtpEmailChannel(smtp_host="localhost")

        with pytest.raises(ChannelError, match="ConnectionRefusedError"):
            channel.send_batch(make_messages(2))

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_session_drop_mid_chunk_raises_channel_error(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        mock_server.sendmail.side_effect = [None, smtplib.SMTPServerDisconnected("gone")]
        channel = SmtpEmailChannel(smtp_host="localhost")

        with pytest.raises(ChannelError):
            channel.send_batch(make_messages(3))

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_tls_and_login_when_configured(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        channel = SmtpEmailChannel(
            smtp_host="smtp.mealmail.io", smtp_port=587,
            username="dispatch", password="s3cret", use_tls=True,
        )

        channel.send_batch(make_messages(1))

        mock_server.starttls.assert_called_once()
        mock_server.login.assert_called_once_with("dispatch", "s3cret")

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_no_tls_or_login_by_default(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        channel = SmtpEmailChannel(smtp_host="localhost")

        channel.send_batch(make_messages(1))

        mock_server.starttls.assert_not_called()
        mock_server.login.assert_not_called()


# ===========================================================================
# MIME construction
# ===========================================================================

class TestMime:
    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_message_headers_and_parts(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        channel = SmtpEmailChannel(smtp_host="localhost", mail_from="plans@mealmail.io")
        message = OutboundMessage(
            recipient_id="r-1",
            to="cook@mealmail.io",
            subject="Your Weekly Meal Plan - Week of 2026-10-19",
            html_body="<p>Monday: Poha</p>",
            text_body="Monday: Poha",
        )

        channel.send_batch([message])

        from_addr, to_addrs, raw = mock_server.sendmail.call_args.args
        assert from_addr == "plans@mealmail.io"
        assert to_addrs == ["cook@mealmail.io"]
        parsed = email_mod.message_from_string(raw)
        assert parsed["Subject"] == "Your Weekly Meal Plan - Week of 2026-10-19"
        assert parsed["To"] == "cook@mealmail.io"
        content_types = [part.get_content_type() for part in parsed.walk() if not part.is_multipart()]
        assert content_types == ["text/plain", "text/html"]

    @patch("mealdispatch.notification.email_sender.smtplib.SMTP")
    def test_html_only_message(self, mock_smtp_cls):
        mock_server = _mock_server(mock_smtp_cls)
        channel = SmtpEmailChannel(smtp_host="localhost")
        message = OutboundMessage(recipient_id="r-1", to="cook@mealmail.io", subject="s", html_body="<p>x</p>")

        channel.send_batch([message])

        parsed = email_mod.message_from_string(mock_server.sendmail.call_args.args[2])
        content_types = [part.get_content_type() for part in parsed.walk() if not part.is_multipart()]
        assert content_types == ["text/html"]
