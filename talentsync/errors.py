"""Error taxonomy shared by the processor and the API."""

from typing import Optional


class TalentSyncError(Exception):
    """Base class for all domain errors."""

    pass


class ExternalApiError(TalentSyncError):
    """Raised when a call to an external service fails.

    Attributes:
        kind: "transient" (safe to retry later) or "permanent"
        status_code: HTTP status from the remote side, if any
    """

    kind = "transient"

    def __init__(self, message: str, status_code: Optional[int] = None, service: str = "ats"):
        self.status_code = status_code
        self.service = service
        super().__init__(message)


class TransientExternalError(ExternalApiError):
    """Rate limits, 5xx, timeouts, network failures, open circuits."""

    kind = "transient"


class PermanentExternalError(ExternalApiError):
    """4xx other than 401/429, or a response that can never be used."""

    kind = "permanent"


class MalformedResponseError(PermanentExternalError):
    """A remote answered, but the payload failed validation."""

    pass


class AuthError(TalentSyncError):
    """Raised when a tenant's ATS connection cannot produce a token."""

    def __init__(self, tenant_id: str, reason: str = "tenant_disconnected", detail: str = ""):
        self.tenant_id = tenant_id
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class ConsentRequired(TalentSyncError):
    """Candidate has not granted data-usage consent."""

    pass


class InvalidSignature(TalentSyncError):
    """Webhook signature missing or does not match."""

    pass


class InvalidPayload(TalentSyncError):
    """Webhook body could not be parsed."""

    pass


class DuplicateDelivery(TalentSyncError):
    """Webhook dedup key has already been processed."""

    pass


class TemplateNotFoundError(TalentSyncError):
    """Benchmark template does not exist or is not visible to the tenant."""

    pass


class TemplateLockedError(TalentSyncError):
    """Benchmark template is referenced by stored scores and cannot change in place."""

    pass


class TenantNotFoundError(TalentSyncError):
    """Tenant does not exist."""

    pass


class CandidateNotFoundError(TalentSyncError):
    """Candidate does not exist within the tenant."""

    pass


class JobNotFoundError(TalentSyncError):
    """Job does not exist within the tenant."""

    pass


def is_retryable(exc: BaseException) -> bool:
    """Whether a failure should go back to the queue for another attempt."""
    if isinstance(exc, (ConsentRequired, PermanentExternalError, AuthError, CandidateNotFoundError)):
        return False
    return True
