"""JobAdder provider."""

from talentsync.ats.jobadder.auth import TokenManager
from talentsync.ats.jobadder.client import JobAdderClient

__all__ = ["JobAdderClient", "TokenManager"]
