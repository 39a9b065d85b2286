"""
Email SMTP notifier.
"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from coinpulse.database.models import AlertType, CandidateNotification
from .base import Notifier, NotificationResult

SUBJECTS = {
    AlertType.HEALTH_SCORE: "{symbol} Health Alert - Low Activity Detected",
    AlertType.CONSISTENCY_SCORE: "{symbol} Consistency Alert - Irregular Updates",
    AlertType.PRICE_DROP: "{symbol} Price Alert - Significant Drop",
    AlertType.MIGRATION: "{symbol} Migration Alert - Action Required",
    AlertType.DELISTING: "{symbol} Delisting Alert - Urgent Action Required",
    AlertType.MARKET_EVENT: "Market Event - Several of Your Coins Are Affected",
    AlertType.PORTFOLIO_BATCH: "Portfolio Alert Summary",
}

URGENCY_COLORS = {
    AlertType.HEALTH_SCORE: "#f59e0b",
    AlertType.CONSISTENCY_SCORE: "#f59e0b",
    AlertType.PRICE_DROP: "#ef4444",
    AlertType.MIGRATION: "#8b5cf6",
    AlertType.DELISTING: "#dc2626",
}


class EmailNotifier(Notifier):
    """Sends notifications via email SMTP."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_address: str,
    ):
        """
        Initialize email notifier.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_address: Sender email address
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address

    def send(
        self, notification: CandidateNotification, recipient: str
    ) -> NotificationResult:
        """Send notification via email."""
        if not self.smtp_host:
            return NotificationResult(
                success=False, channel="email", error="SMTP host not configured"
            )

        try:
            message = self._create_message(notification, recipient)

            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                if self.smtp_user:
                    server.login(self.smtp_user, self.smtp_password)
                server.send_message(message)

            return NotificationResult(success=True, channel="email")

        except smtplib.SMTPAuthenticationError as e:
            return NotificationResult(
                success=False,
                channel="email",
                error=f"Authentication failed: {str(e)}",
            )
        except Exception as e:
            return NotificationResult(
                success=False,
                channel="email",
                error=f"SMTP error: {str(e)}",
            )

    def _create_message(
        self, notification: CandidateNotification, recipient: str
    ) -> MIMEMultipart:
        """Create email message."""
        message = MIMEMultipart("alternative")
        message["Subject"] = self._create_subject(notification)
        message["From"] = self.from_address
        message["To"] = recipient

        message.attach(MIMEText(self._create_text_body(notification), "plain"))
        message.attach(MIMEText(self._create_body(notification), "html"))

        return message

    def _create_subject(self, notification: CandidateNotification) -> str:
        """Create email subject."""
        template = SUBJECTS.get(notification.alert_type, "{symbol} Alert Notification")
        return "CoinPulse: " + template.format(symbol=notification.coin_symbol)

    @staticmethod
    def _alert_label(notification: CandidateNotification) -> str:
        return AlertType(notification.alert_type).value.replace("_", " ").title()

    def _create_text_body(self, notification: CandidateNotification) -> str:
        """Create plain text email body."""
        return f"""
CoinPulse Alert

Coin: {notification.coin_name} ({notification.coin_symbol})
Alert: {self._alert_label(notification)}
Current value: {notification.current_value:g}
Threshold: {notification.threshold_value:g}

{notification.message}
"""

    def _create_body(self, notification: CandidateNotification) -> str:
        """Create HTML email body."""
        color = URGENCY_COLORS.get(notification.alert_type, "#3498DB")

        return f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; }}
        .alert-box {{
            border-left: 4px solid {color};
            padding: 15px;
            background-color: #f9f9f9;
            margin-bottom: 20px;
        }}
        .symbol {{ font-size: 24px; font-weight: bold; color: {color}; }}
        .message {{ margin: 15px 0; color: #555; }}
        .meta {{ color: #888; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="alert-box">
        <div class="symbol">{notification.coin_symbol}</div>
        <div class="message">{notification.message}</div>
        <div class="meta">
            Alert: {self._alert_label(notification)}<br>
            Current value: {notification.current_value:g}<br>
            Threshold: {notification.threshold_value:g}
        </div>
    </div>
</body>
</html>
"""
