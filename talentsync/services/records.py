"""Upserts of ATS jobs and candidates into local tables."""

from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from talentsync.ats.base import ATSCandidate, ATSJob
from talentsync.models import Candidate, Job
from talentsync.utils.time import parse_timestamp, utc_now


def find_job(db: Session, tenant_id: str, external_id: str) -> Optional[Job]:
    return db.execute(
        select(Job).where(Job.tenant_id == tenant_id, Job.external_id == external_id)
    ).scalar_one_or_none()


def find_candidate(db: Session, tenant_id: str, external_id: str) -> Optional[Candidate]:
    return db.execute(
        select(Candidate).where(Candidate.tenant_id == tenant_id, Candidate.external_id == external_id)
    ).scalar_one_or_none()


def upsert_job(db: Session, tenant_id: str, ats_job: ATSJob) -> Tuple[Job, bool]:
    """Insert or update a job by (tenant, external id). Caller commits.

    Returns:
        (job, created)
    """
    job = find_job(db, tenant_id, ats_job.external_id)
    created = job is None
    if created:
        job = Job(tenant_id=tenant_id, external_id=ats_job.external_id)
        db.add(job)

    job.title = ats_job.title
    job.description = ats_job.description
    job.location = ats_job.location
    job.status = ats_job.status
    job.is_active = ats_job.is_active
    job.raw = ats_job.external_data
    job.synced_at = utc_now()
    db.flush()
    return job, created


def _accept_ats_consent(candidate: Candidate, ats_candidate: ATSCandidate) -> bool:
    if bool(candidate.data_usage_consent) == ats_candidate.data_usage_consent:
        return False
    if not ats_candidate.data_usage_consent or candidate.consent_updated_at is None:
        return True
    if not ats_candidate.updated_at:
        return False
    try:
        return parse_timestamp(ats_candidate.updated_at) > candidate.consent_updated_at
    except ValueError:
        return False


def upsert_candidate(db: Session, tenant_id: str, ats_candidate: ATSCandidate) -> Tuple[Candidate, bool]:
    """Insert or update a candidate by (tenant, external id). Caller commits.

    Consent reported by the ATS overwrites the local flag only when it
    changes, so consent_updated_at tracks real decisions. A withdrawal is
    always taken; a grant does not undo a recorded withdrawal unless the ATS
    record changed after that withdrawal.
    """
    candidate = find_candidate(db, tenant_id, ats_candidate.external_id)
    created = candidate is None
    now = utc_now()
    if created:
        candidate = Candidate(tenant_id=tenant_id, external_id=ats_candidate.external_id)
        db.add(candidate)

    candidate.first_name = ats_candidate.first_name
    candidate.last_name = ats_candidate.last_name
    candidate.email = ats_candidate.email
    candidate.phone = ats_candidate.phone
    candidate.status = ats_candidate.status
    candidate.skills = ats_candidate.skills
    candidate.is_active = True
    candidate.raw = ats_candidate.external_data
    candidate.synced_at = now
    if created or _accept_ats_consent(candidate, ats_candidate):
        candidate.data_usage_consent = ats_candidate.data_usage_consent
        candidate.consent_updated_at = now
    db.flush()
    return candidate, created
