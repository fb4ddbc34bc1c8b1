"""Inbound ATS webhooks."""

from talentsync.webhooks.ingress import WebhookIngress, WebhookOutcome, compute_signature, purge_deliveries

__all__ = ["WebhookIngress", "WebhookOutcome", "compute_signature", "purge_deliveries"]
