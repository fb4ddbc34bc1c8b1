"""Periodic data retention sweep."""

from datetime import datetime, timedelta
from typing import Dict, Optional

import structlog
from sqlalchemy.orm import Session

from talentsync.config import QueueConfig, RetentionConfig
from talentsync.queue_manager import EnrichmentQueue
from talentsync.services.access_log import AccessLogService
from talentsync.services.enrichment import EnrichmentService
from talentsync.utils.time import utc_now
from talentsync.webhooks.ingress import purge_deliveries

logger = structlog.get_logger()


def run_retention_sweep(
    db: Session,
    retention: RetentionConfig,
    queue_config: QueueConfig,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """Apply every retention rule once.

    Returns:
        Rows affected per rule
    """
    now = now or utc_now()
    counts = {
        "enrichments_deleted": EnrichmentService(db, retention).purge_expired(now),
        "access_log_purged": AccessLogService(db, retention).purge_expired(now),
        "queue_entries_cleared": EnrichmentQueue(db, queue_config).clear_done(
            now - timedelta(days=retention.queue_done_retention_days)
        ),
        "webhook_claims_purged": purge_deliveries(
            db, now - timedelta(hours=retention.webhook_dedup_retention_hours)
        ),
    }
    logger.info("Retention sweep complete", **counts)
    return counts
