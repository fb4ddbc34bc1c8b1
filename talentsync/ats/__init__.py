"""ATS integration layer."""

from talentsync.ats.base import ATSCandidate, ATSEducation, ATSExperience, ATSJob, ATSPage, ATSResume, ATSWebhook

__all__ = ["ATSCandidate", "ATSEducation", "ATSExperience", "ATSJob", "ATSPage", "ATSResume", "ATSWebhook"]
