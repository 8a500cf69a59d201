"""Render a ContextBundle as plain text for the system prompt.

``render_prompt`` is a pure function of the bundle: no clock, locale or
environment is consulted, so identical bundles give byte-identical text.
Sections appear in a fixed order and only when they have content:

    USER INFORMATION → PROFILE INFORMATION → JOB APPLICATIONS →
    UPCOMING MEETINGS → RELEVANT JOBS → UPCOMING EVENTS → LATEST NEWS →
    RECENT CONVERSATIONS
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from context_aggregator import (
    CompanyProfile,
    ContextBundle,
    CounselorProfile,
    StudentProfile,
)

_MEETING_DESCRIPTION_CHARS = 100
_EXCERPT_CHARS = 100


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _day(value) -> str:
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value) if value is not None else "TBA"


def _clock(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%H:%M")
    return ""


def _section(title: str, lines: list[str]) -> str:
    return f"## {title} ##\n" + "\n".join(lines) + "\n"


def _user_lines(bundle: ContextBundle) -> list[str]:
    u = bundle.user
    return [f"User ID: {u.id}", f"Username: {u.username}", f"Role: {u.role}"]


def _profile_lines(profile) -> list[str]:
    lines: list[str] = []
    if isinstance(profile, StudentProfile):
        lines.append(f"Student Name: {profile.name}")
        if profile.title:
            lines.append(f"Title: {profile.title}")
        if profile.level:
            lines.append(f"Level: {profile.level}")
        if profile.category:
            lines.append(f"Category: {profile.category}")
        if profile.description:
            lines.append(f"Description: {profile.description}")
        if profile.career_pathways:
            lines.append(f"Career Pathways: {', '.join(profile.career_pathways)}")
    elif isinstance(profile, CounselorProfile):
        lines.append(f"Counselor Name: {profile.name}")
        if profile.title:
            lines.append(f"Title: {profile.title}")
        if profile.description:
            lines.append(f"Description: {profile.description}")
        if profile.specializations:
            lines.append(f"Specializations: {', '.join(profile.specializations)}")
    elif isinstance(profile, CompanyProfile):
        lines.append(f"Company Name: {profile.name}")
        if profile.industry:
            lines.append(f"Industry: {profile.industry}")
        if profile.description:
            lines.append(f"Description: {profile.description}")
    return lines


def _application_lines(bundle: ContextBundle) -> list[str]:
    lines = []
    for i, a in enumerate(bundle.job_applications, 1):
        lines.append(f"{i}. {a.job_title} at {a.company_name}")
        lines.append(f"   Status: {a.status or 'unknown'}")
        lines.append(f"   Applied: {_day(a.applied_at)}")
    return lines


def _meeting_lines(bundle: ContextBundle) -> list[str]:
    lines = []
    for i, m in enumerate(bundle.meetings, 1):
        when = f"{_day(m.start)} {_clock(m.start)}".strip()
        end = _clock(m.end)
        if end:
            when += f" - {end}"
        lines.append(f"{i}. {m.title}")
        lines.append(f"   With: {m.other_party}")
        lines.append(f"   When: {when}")
        lines.append(f"   Status: {m.status or 'unknown'}")
        if m.description:
            lines.append(f"   Description: {_clip(m.description, _MEETING_DESCRIPTION_CHARS)}")
    return lines


def _job_lines(bundle: ContextBundle) -> list[str]:
    lines = []
    for i, j in enumerate(bundle.jobs, 1):
        lines.append(f"{i}. {j.title} at {j.company}")
        if j.location:
            lines.append(f"   Location: {j.location}")
        if j.job_type:
            lines.append(f"   Type: {j.job_type}")
        if j.end_date:
            lines.append(f"   End Date: {_day(j.end_date)}")
        if j.description:
            lines.append(f"   Description: {j.description}")
    return lines


def _event_lines(bundle: ContextBundle) -> list[str]:
    lines = []
    for i, e in enumerate(bundle.events, 1):
        lines.append(f"{i}. {e.title}")
        lines.append(f"   Date: {_day(e.date)}")
    return lines


def _news_lines(bundle: ContextBundle) -> list[str]:
    lines = []
    for i, n in enumerate(bundle.news, 1):
        lines.append(f"{i}. {n.title}")
        lines.append(f"   Published: {_day(n.published)}")
        if n.summary:
            lines.append(f"   Summary: {n.summary}")
    return lines


def _conversation_lines(bundle: ContextBundle) -> list[str]:
    lines = []
    for i, c in enumerate(bundle.recent_conversations, 1):
        lines.append(f'Conversation {i}: "{c.title}"')
        for m in c.messages:
            speaker = "User" if m.is_user_message else "AI"
            lines.append(f"{speaker}: {_clip(m.content, _EXCERPT_CHARS)}")
    return lines


def render_prompt(bundle: Optional[ContextBundle]) -> str:
    """Serialize ``bundle`` for the system prompt; ``""`` when there is nothing."""
    if bundle is None:
        return ""

    sections = [
        ("USER INFORMATION", _user_lines(bundle)),
        ("PROFILE INFORMATION", _profile_lines(bundle.profile)),
        ("JOB APPLICATIONS", _application_lines(bundle)),
        ("UPCOMING MEETINGS", _meeting_lines(bundle)),
        ("RELEVANT JOBS", _job_lines(bundle)),
        ("UPCOMING EVENTS", _event_lines(bundle)),
        ("LATEST NEWS", _news_lines(bundle)),
        ("RECENT CONVERSATIONS", _conversation_lines(bundle)),
    ]
    return "\n".join(_section(title, lines) for title, lines in sections if lines)
