"""Standardized ATS records.

The client converts every JSON payload into one of these dataclasses; a
payload missing required fields is a permanent (malformed) error.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from talentsync.errors import MalformedResponseError

CONSENT_FIELDS = ("dataUsageConsent", "data_usage_consent", "consent")

T = TypeVar("T")


def _require(data: Any, *keys: str) -> None:
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected object, got {type(data).__name__}")
    missing = [k for k in keys if data.get(k) in (None, "")]
    if missing:
        raise MalformedResponseError(f"Missing fields: {', '.join(missing)}")


def _location(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        parts = [value.get(k) for k in ("city", "state", "country")]
        return ", ".join(p for p in parts if p) or None
    return value or None


@dataclass
class ATSJob:
    """Job data from the ATS."""

    external_id: str
    title: str
    status: str = "active"
    reference: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    work_type: Optional[str] = None
    company_name: Optional[str] = None
    application_url: Optional[str] = None
    external_data: Optional[dict] = None  # Raw data from ATS for reference

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ATSJob":
        _require(data, "id", "title")
        company = data.get("company") or {}
        return cls(
            external_id=str(data["id"]),
            title=data["title"],
            status=data.get("status") or "active",
            reference=data.get("reference"),
            location=_location(data.get("location")),
            description=data.get("description"),
            work_type=data.get("workType"),
            company_name=company.get("name") if isinstance(company, dict) else None,
            application_url=data.get("applicationUrl"),
            external_data=data,
        )


@dataclass
class ATSPage(Generic[T]):
    """One page from a list endpoint.

    Items that fail to parse are kept as error messages instead of failing
    the page, so a caller can count them and keep paging.
    """

    records: List[T] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def size(self) -> int:
        """Items the endpoint returned, parsed or not."""
        return len(self.records) + len(self.errors)

    @classmethod
    def parse(cls, items: Iterable[Any], parser: Callable[[Any], T]) -> "ATSPage[T]":
        page = cls()
        for item in items:
            try:
                page.records.append(parser(item))
            except MalformedResponseError as e:
                page.errors.append(str(e))
        return page


@dataclass
class ATSCandidate:
    """Candidate data from the ATS."""

    external_id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str = "active"
    skills: List[str] = field(default_factory=list)
    current_job_title: Optional[str] = None
    current_employer: Optional[str] = None
    data_usage_consent: bool = False
    updated_at: Optional[str] = None
    external_data: Optional[dict] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ATSCandidate":
        _require(data, "id")
        custom = data.get("customFields") or {}
        consent = any(bool(custom.get(k)) for k in CONSENT_FIELDS) if isinstance(custom, dict) else False
        skills = data.get("skills") or []
        if not isinstance(skills, list):
            raise MalformedResponseError("skills must be a list")
        return cls(
            external_id=str(data["id"]),
            first_name=data.get("firstName"),
            last_name=data.get("lastName"),
            email=data.get("email"),
            phone=data.get("phone"),
            status=data.get("status") or "active",
            skills=[str(s) for s in skills],
            current_job_title=data.get("currentJobTitle"),
            current_employer=data.get("currentEmployer"),
            data_usage_consent=consent,
            updated_at=data.get("updatedAt"),
            external_data=data,
        )


@dataclass
class ATSResume:
    external_id: str
    file_name: str
    file_type: Optional[str] = None
    url: Optional[str] = None
    content: Optional[bytes] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ATSResume":
        _require(data, "id")
        return cls(
            external_id=str(data["id"]),
            file_name=data.get("fileName") or "resume",
            file_type=data.get("fileType"),
            url=data.get("url"),
        )


@dataclass
class ATSExperience:
    job_title: str
    employer: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_current: bool = False
    description: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ATSExperience":
        _require(data, "jobTitle")
        return cls(
            job_title=data["jobTitle"],
            employer=data.get("employer"),
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
            is_current=bool(data.get("isCurrent")),
            description=data.get("description"),
        )


@dataclass
class ATSEducation:
    institution: str
    qualification: Optional[str] = None
    field_of_study: Optional[str] = None
    end_date: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ATSEducation":
        _require(data, "institution")
        return cls(
            institution=data["institution"],
            qualification=data.get("qualification"),
            field_of_study=data.get("field"),
            end_date=data.get("endDate"),
        )


@dataclass
class ATSWebhook:
    external_id: str
    url: str
    events: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "ATSWebhook":
        _require(data, "id", "url")
        return cls(external_id=str(data["id"]), url=data["url"], events=list(data.get("events") or []))


def render_profile_text(
    candidate: ATSCandidate,
    experiences: List[ATSExperience],
    education: List[ATSEducation],
) -> str:
    """Plain-text profile for the analyzer when no resume document exists."""
    lines = [f"Name: {' '.join(p for p in (candidate.first_name, candidate.last_name) if p)}"]
    if candidate.current_job_title:
        lines.append(f"Current role: {candidate.current_job_title} at {candidate.current_employer or 'unknown'}")
    if candidate.skills:
        lines.append(f"Skills: {', '.join(candidate.skills)}")
    if experiences:
        lines.append("Experience:")
        for exp in experiences:
            period = f"{exp.start_date or '?'} - {'present' if exp.is_current else exp.end_date or '?'}"
            lines.append(f"- {exp.job_title}, {exp.employer or 'unknown'} ({period})")
            if exp.description:
                lines.append(f"  {exp.description}")
    if education:
        lines.append("Education:")
        for edu in education:
            lines.append(f"- {edu.qualification or ''} {edu.field_of_study or ''}, {edu.institution}".strip())
    return "\n".join(lines)
