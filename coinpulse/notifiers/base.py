"""
Base notifier classes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from coinpulse.database.models import CandidateNotification


@dataclass
class NotificationResult:
    """Result of a notification attempt."""

    success: bool
    channel: str
    error: Optional[str] = None


class Notifier(ABC):
    """Abstract base class for notifiers."""

    @abstractmethod
    def send(
        self, notification: CandidateNotification, recipient: str
    ) -> NotificationResult:
        """
        Deliver a single notification.

        Args:
            notification: Notification to send
            recipient: Channel-specific address (e.g., an email address)

        Returns:
            NotificationResult indicating success or failure
        """
        pass
