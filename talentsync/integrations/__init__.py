"""External service integrations."""

from talentsync.integrations.claude import Analyzer, ClaudeAnalyzer
from talentsync.integrations.ses import NotificationResult, Notifier, SESNotifier

__all__ = ["Analyzer", "ClaudeAnalyzer", "NotificationResult", "Notifier", "SESNotifier"]
