"""Processors run by the worker and scheduler."""

from talentsync.processors.base import BaseProcessor
from talentsync.processors.enrich import EnrichmentProcessor
from talentsync.processors.sync import SyncProcessor, SyncStats

__all__ = ["BaseProcessor", "EnrichmentProcessor", "SyncProcessor", "SyncStats"]
