"""
Admin notifier

Tells the site owner about new visitor messages out of band:
1. Resend email API when RESEND_API_KEY and ADMIN_EMAIL are set
2. otherwise a plain JSON webhook (Telegram/Slack/Discord relay) when
   NOTIFICATION_WEBHOOK is set
3. otherwise nothing

Fire and forget: failures are logged and never reach the sender.
"""

import html
import logging
from typing import Optional

import requests

from livechat.config import NotificationSettings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class AdminNotifier:
    """Delivers new-message notifications to the admin"""

    def __init__(self, settings: NotificationSettings, http: Optional[requests.Session] = None):
        """
        Args:
            settings: notification settings (from the environment)
            http: requests session (injectable for tests)
        """
        self.settings = settings
        self.http = http or requests.Session()

    @property
    def enabled(self) -> bool:
        s = self.settings
        return bool((s.resend_api_key and s.admin_email) or s.webhook_url)

    def notify(
        self,
        session_id: int,
        message: str,
        visitor_name: Optional[str] = None,
        visitor_email: Optional[str] = None
    ) -> Optional[str]:
        """
        Send one notification

        Returns:
            The delivery method used ("resend" / "webhook"), or None when
            skipped or failed
        """
        try:
            if self.settings.resend_api_key and self.settings.admin_email:
                self._send_email(session_id, message, visitor_name, visitor_email)
                return "resend"
            if self.settings.webhook_url:
                self._send_webhook(message, visitor_name, visitor_email)
                return "webhook"
        except requests.RequestException as e:
            logger.error("[AdminNotifier] Notification for session %s failed: %s", session_id, e)
            return None

        logger.debug("[AdminNotifier] No notification method configured, skipping")
        return None

    def _send_email(self, session_id, message, visitor_name, visitor_email) -> None:
        s = self.settings
        response = self.http.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {s.resend_api_key}"},
            json={
                "from": s.sender,
                "to": s.admin_email,
                "subject": f"New chat message from {visitor_name or 'Visitor'}",
                "html": self._render_email(message, visitor_name, visitor_email),
            },
            timeout=s.timeout,
        )
        response.raise_for_status()
        logger.info("[AdminNotifier] Email sent for session %s", session_id)

    def _send_webhook(self, message, visitor_name, visitor_email) -> None:
        s = self.settings
        text = (
            f"New chat message from {visitor_name or 'Visitor'} "
            f"({visitor_email or 'no email'}):\n\n{message}"
        )
        response = self.http.post(s.webhook_url, json={"text": text}, timeout=s.timeout)
        response.raise_for_status()

    def _render_email(self, message, visitor_name, visitor_email) -> str:
        dashboard_url = f"{self.settings.site_url.rstrip('/')}/admin/chat"
        return (
            '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
            "<h2>New Chat Message</h2>"
            f"<p><strong>From:</strong> {html.escape(visitor_name or 'Anonymous')}</p>"
            f"<p><strong>Email:</strong> {html.escape(visitor_email or 'Not provided')}</p>"
            "<p><strong>Message:</strong></p>"
            f"<p>{html.escape(message)}</p>"
            f'<p><a href="{dashboard_url}">View in Admin Dashboard</a></p>'
            "</div>"
        )
