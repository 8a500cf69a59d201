"""Context aggregation: live platform data for grounding a completion.

``build_context(user_id, message)`` resolves the caller, then issues the
fixed set of read queries concurrently:

    profile · recent conversations · jobs · events · news · meetings ·
    job applications

and returns one immutable ``ContextBundle``.  Each sub-query is fault
isolated: a failure is logged as a ``GroundingPartialFailure`` and that
section comes back empty; only an unknown user yields ``None``.

psycopg2 is blocking, so every query runs on a worker thread via
``asyncio.to_thread`` and the event loop keeps serving other requests.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Awaitable, Optional, Union

import query_db
from errors import GroundingPartialFailure
from field_decode import decode_list_field
from job_search import extract_job_keywords, is_job_search_query
from settings import settings

logger = logging.getLogger(__name__)

_SNIPPET_CHARS = 150


# ═══════════════════════════════════════════════════════════════════════════
#  BUNDLE TYPES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class UserSummary:
    id: int
    username: str
    email: str
    role: str


@dataclass(frozen=True)
class StudentProfile:
    id: int
    name: str
    title: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    level: Optional[str] = None
    career_pathways: tuple[str, ...] = ()


@dataclass(frozen=True)
class CounselorProfile:
    id: int
    name: str
    title: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    specializations: tuple[str, ...] = ()


@dataclass(frozen=True)
class CompanyProfile:
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    industry: Optional[str] = None


Profile = Union[StudentProfile, CounselorProfile, CompanyProfile]


@dataclass(frozen=True)
class ExcerptMessage:
    content: str
    is_user_message: bool
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ConversationExcerpt:
    id: int
    title: str
    updated_at: Optional[datetime] = None
    messages: tuple[ExcerptMessage, ...] = ()


@dataclass(frozen=True)
class JobSummary:
    id: int
    title: str
    company: str
    location: Optional[str] = None
    job_type: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: str = ""


@dataclass(frozen=True)
class EventSummary:
    id: int
    title: str
    date: Optional[date] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class NewsSummary:
    id: int
    title: str
    summary: str = ""
    published: Optional[date] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class MeetingSummary:
    id: int
    title: str
    other_party: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    status: Optional[str] = None
    role: str = "recipient"
    description: Optional[str] = None


@dataclass(frozen=True)
class ApplicationSummary:
    id: int
    job_title: str
    company_name: str
    status: Optional[str] = None
    applied_at: Optional[datetime] = None


@dataclass(frozen=True)
class ContextBundle:
    """Everything the grounding text is rendered from.  Request-scoped."""
    user: UserSummary
    profile: Optional[Profile] = None
    recent_conversations: tuple[ConversationExcerpt, ...] = ()
    jobs: tuple[JobSummary, ...] = ()
    events: tuple[EventSummary, ...] = ()
    news: tuple[NewsSummary, ...] = ()
    meetings: tuple[MeetingSummary, ...] = ()
    job_applications: tuple[ApplicationSummary, ...] = ()


# ═══════════════════════════════════════════════════════════════════════════
#  ROW → PROJECTION
# ═══════════════════════════════════════════════════════════════════════════

def _snippet(text: Optional[str], limit: int = _SNIPPET_CHARS) -> str:
    if not text:
        return ""
    return text if len(text) <= limit else text[:limit] + "..."


def _student_from_row(r: dict) -> StudentProfile:
    return StudentProfile(
        id=r["student_id"],
        name=r["student_name"],
        title=r.get("student_title"),
        email=r.get("student_email"),
        description=r.get("student_description"),
        category=r.get("student_category"),
        level=r.get("student_level"),
        career_pathways=tuple(decode_list_field(r.get("student_career_pathways"))),
    )


def _counselor_from_row(r: dict) -> CounselorProfile:
    return CounselorProfile(
        id=r["counselor_id"],
        name=r["counselor_name"],
        title=r.get("counselor_title"),
        email=r.get("counselor_email"),
        description=r.get("counselor_description"),
        specializations=tuple(decode_list_field(r.get("counselor_specializations"))),
    )


def _company_from_row(r: dict) -> CompanyProfile:
    return CompanyProfile(
        id=r["company_id"],
        name=r["company_name"],
        email=r.get("company_email"),
        phone=r.get("company_phone"),
        description=r.get("company_description"),
        industry=r.get("company_industry"),
    )


def _job_from_row(r: dict) -> JobSummary:
    return JobSummary(
        id=r["job_id"],
        title=r["title"],
        company=r["company_name"],
        location=r.get("location"),
        job_type=r.get("tags"),
        status=r.get("status"),
        start_date=r.get("start_date"),
        end_date=r.get("end_date"),
        description=_snippet(r.get("description")),
    )


def _first_image(urls: Optional[str]) -> Optional[str]:
    if not urls:
        return None
    return urls.split(",")[0].strip() or None


# ═══════════════════════════════════════════════════════════════════════════
#  SUB-QUERIES  (each independently callable, each may raise)
# ═══════════════════════════════════════════════════════════════════════════

async def resolve_user(user_id: int) -> Optional[UserSummary]:
    row = await asyncio.to_thread(query_db.get_user, user_id)
    if row is None:
        return None
    return UserSummary(id=row["user_id"], username=row["username"],
                       email=row.get("email") or "", role=row["role"])


_PROFILE_LOADERS = {
    "Student": ("get_student_profile", _student_from_row),
    "Counselor": ("get_counselor_profile", _counselor_from_row),
    "Company": ("get_company_profile", _company_from_row),
}


async def fetch_profile(user: UserSummary) -> Optional[Profile]:
    """Role-dispatched profile; admins and unknown roles have none."""
    loader = _PROFILE_LOADERS.get(user.role)
    if loader is None:
        return None
    query_name, convert = loader
    row = await asyncio.to_thread(getattr(query_db, query_name), user.id)
    return convert(row) if row else None


async def fetch_recent_conversations(user: UserSummary) -> tuple[ConversationExcerpt, ...]:
    rows = await asyncio.to_thread(
        query_db.get_recent_conversations,
        user.id,
        settings.CONTEXT_RECENT_CONVERSATIONS,
        settings.CONTEXT_MESSAGES_PER_CONVERSATION,
    )
    return tuple(
        ConversationExcerpt(
            id=c["id"],
            title=c.get("title") or "Untitled",
            updated_at=c.get("updated_at"),
            messages=tuple(
                ExcerptMessage(content=m["content"] or "",
                               is_user_message=bool(m["is_user_message"]),
                               timestamp=m.get("timestamp"))
                for m in c.get("messages", [])
            ),
        )
        for c in rows
    )


async def _career_pathways(user: UserSummary, profile: Optional[Profile]) -> list[str]:
    if isinstance(profile, StudentProfile):
        return list(profile.career_pathways)
    row = await asyncio.to_thread(query_db.get_student_profile, user.id)
    return decode_list_field(row.get("student_career_pathways")) if row else []


async def fetch_jobs(
    user: UserSummary,
    message: str = "",
    profile: Optional[Profile] = None,
) -> tuple[JobSummary, ...]:
    """Job postings relevant to this turn.

    Job-search messages run a keyword match; everything else uses the
    caller's interests (student pathways, or a company's own postings).
    Either way, zero rows falls back to the most recent active postings.
    """
    if is_job_search_query(message):
        keywords = extract_job_keywords(message)
        limit = settings.CONTEXT_JOB_SEARCH_LIMIT
        logger.info(f"Job search query, keywords={keywords}")
        rows = await asyncio.to_thread(query_db.search_jobs_by_keywords, keywords, limit)
    else:
        limit = settings.CONTEXT_JOB_INTEREST_LIMIT
        if user.role == "Student":
            pathways = await _career_pathways(user, profile)
            rows = await asyncio.to_thread(query_db.get_jobs_by_interests, pathways, limit)
        elif user.role == "Company":
            rows = await asyncio.to_thread(query_db.get_company_jobs, user.id, limit)
        else:
            rows = []

    if not rows:
        rows = await asyncio.to_thread(query_db.get_recent_jobs, limit)
    return tuple(_job_from_row(r) for r in rows)


async def fetch_events() -> tuple[EventSummary, ...]:
    rows = await asyncio.to_thread(query_db.get_upcoming_events, settings.CONTEXT_EVENTS_LIMIT)
    return tuple(
        EventSummary(id=r["event_id"], title=r["title"], date=r.get("event_date"),
                     image_url=r.get("image_url"))
        for r in rows
    )


async def fetch_news() -> tuple[NewsSummary, ...]:
    rows = await asyncio.to_thread(query_db.get_latest_news, settings.CONTEXT_NEWS_LIMIT)
    return tuple(
        NewsSummary(id=r["news_id"], title=r["title"], summary=_snippet(r.get("content")),
                    published=r.get("news_date"), image_url=_first_image(r.get("image_urls")))
        for r in rows
    )


async def fetch_meetings(user: UserSummary) -> tuple[MeetingSummary, ...]:
    rows = await asyncio.to_thread(
        query_db.get_upcoming_meetings, user.id, settings.CONTEXT_MEETINGS_LIMIT,
    )
    return tuple(
        MeetingSummary(
            id=r["meeting_id"],
            title=r["meeting_title"],
            other_party=r.get("other_party") or "Unknown",
            start=r.get("starts_at"),
            end=r.get("ends_at"),
            status=r.get("status"),
            role=r.get("role") or "recipient",
            description=r.get("meeting_description"),
        )
        for r in rows
    )


async def fetch_job_applications(user: UserSummary) -> tuple[ApplicationSummary, ...]:
    """Recent applications; only students apply, so others get nothing."""
    if user.role != "Student":
        return ()
    rows = await asyncio.to_thread(
        query_db.get_job_applications, user.id, settings.CONTEXT_APPLICATIONS_LIMIT,
    )
    return tuple(
        ApplicationSummary(id=r["application_id"], job_title=r["job_title"],
                           company_name=r["company_name"], status=r.get("status"),
                           applied_at=r.get("submitted_at"))
        for r in rows
    )


# ═══════════════════════════════════════════════════════════════════════════
#  AGGREGATION
# ═══════════════════════════════════════════════════════════════════════════

async def _isolated(section: str, pending: Awaitable[Any], empty: Any) -> Any:
    """Await one sub-query; on failure log it and return ``empty``."""
    try:
        return await pending
    except Exception as e:
        failure = GroundingPartialFailure(section, e)
        logger.warning(f"Grounding section dropped: {failure}")
        return empty


async def build_context(user_id: Optional[int], message: str = "") -> Optional[ContextBundle]:
    """Assemble the grounding bundle for ``user_id``.

    Returns None for anonymous callers and for ids that do not resolve to a
    user (a failed user lookup counts as unresolved).
    """
    if user_id is None:
        return None
    try:
        user = await resolve_user(user_id)
    except Exception as e:
        logger.error(f"User lookup failed for {user_id}: {e}")
        return None
    if user is None:
        logger.info(f"No user found with id {user_id}; skipping grounding")
        return None

    profile = await _isolated("profile", fetch_profile(user), None)

    conversations, jobs, events, news, meetings, applications = await asyncio.gather(
        _isolated("recent_conversations", fetch_recent_conversations(user), ()),
        _isolated("jobs", fetch_jobs(user, message, profile), ()),
        _isolated("events", fetch_events(), ()),
        _isolated("news", fetch_news(), ()),
        _isolated("meetings", fetch_meetings(user), ()),
        _isolated("job_applications", fetch_job_applications(user), ()),
    )

    bundle = ContextBundle(
        user=user,
        profile=profile,
        recent_conversations=conversations,
        jobs=jobs,
        events=events,
        news=news,
        meetings=meetings,
        job_applications=applications,
    )
    logger.info(
        "Context: role=%s profile=%s conversations=%d jobs=%d events=%d news=%d "
        "meetings=%d applications=%d",
        user.role, "yes" if profile else "no", len(conversations), len(jobs),
        len(events), len(news), len(meetings), len(applications),
    )
    return bundle
