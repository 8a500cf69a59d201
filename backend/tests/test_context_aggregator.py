"""Tests for build_context: grounding aggregation over query_db.

Every query_db read is replaced with a stub, so no database is needed.
"""

import asyncio
import logging
import time
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

import context_aggregator
import query_db
from context_aggregator import (
    CompanyProfile,
    ContextBundle,
    StudentProfile,
    build_context,
)


STUDENT = {"user_id": 7, "username": "nimal", "email": "nimal@example.com", "role": "Student"}
COMPANY = {"user_id": 9, "username": "acme", "email": "hr@acme.lk", "role": "Company"}

STUDENT_ROW = {
    "student_id": 3,
    "student_name": "Nimal Perera",
    "student_title": "Undergraduate",
    "student_level": "Level 3",
    "student_career_pathways": '["Banking", "Finance"]',
}

JOB_ROW = {
    "job_id": 11, "title": "Banking Associate", "company_name": "People's Bank",
    "location": "Colombo", "tags": "Full-time", "status": "active",
    "start_date": date(2025, 1, 1), "end_date": date(2025, 2, 1),
    "description": "x" * 200,
}


@pytest.fixture
def stub_db(monkeypatch):
    """Stub every grounding read with an empty, successful result."""
    stubs = {
        "get_user": MagicMock(return_value=STUDENT),
        "get_student_profile": MagicMock(return_value=STUDENT_ROW),
        "get_counselor_profile": MagicMock(return_value=None),
        "get_company_profile": MagicMock(return_value=None),
        "get_recent_conversations": MagicMock(return_value=[]),
        "search_jobs_by_keywords": MagicMock(return_value=[JOB_ROW]),
        "get_jobs_by_interests": MagicMock(return_value=[JOB_ROW]),
        "get_company_jobs": MagicMock(return_value=[]),
        "get_recent_jobs": MagicMock(return_value=[]),
        "get_upcoming_events": MagicMock(return_value=[]),
        "get_latest_news": MagicMock(return_value=[]),
        "get_upcoming_meetings": MagicMock(return_value=[]),
        "get_job_applications": MagicMock(return_value=[]),
    }
    for name, stub in stubs.items():
        monkeypatch.setattr(query_db, name, stub)
    return stubs


# ═══════════════════════════════════════════════════════════════════════════
#  Resolution
# ═══════════════════════════════════════════════════════════════════════════

class TestUserResolution:
    @pytest.mark.asyncio
    async def test_anonymous_returns_none(self, stub_db):
        assert await build_context(None, "hi") is None
        stub_db["get_user"].assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_user_returns_none(self, stub_db):
        stub_db["get_user"].return_value = None
        assert await build_context(404, "hi") is None
        stub_db["get_upcoming_events"].assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_lookup_returns_none(self, stub_db):
        stub_db["get_user"].side_effect = RuntimeError("db down")
        assert await build_context(7, "hi") is None

    @pytest.mark.asyncio
    async def test_student_bundle(self, stub_db):
        bundle = await build_context(7, "hello")
        assert isinstance(bundle, ContextBundle)
        assert bundle.user.username == "nimal"
        assert bundle.user.role == "Student"
        assert isinstance(bundle.profile, StudentProfile)
        assert bundle.profile.career_pathways == ("Banking", "Finance")


# ═══════════════════════════════════════════════════════════════════════════
#  Job selection
# ═══════════════════════════════════════════════════════════════════════════

class TestJobSelection:
    @pytest.mark.asyncio
    async def test_job_query_uses_keyword_search(self, stub_db):
        bundle = await build_context(7, "Are there any banking jobs?")

        stub_db["search_jobs_by_keywords"].assert_called_once()
        keywords, limit = stub_db["search_jobs_by_keywords"].call_args.args
        assert "banking" in keywords
        assert limit == context_aggregator.settings.CONTEXT_JOB_SEARCH_LIMIT
        stub_db["get_jobs_by_interests"].assert_not_called()
        assert bundle.jobs[0].title == "Banking Associate"

    @pytest.mark.asyncio
    async def test_other_message_uses_student_interests(self, stub_db):
        await build_context(7, "How should I prepare for my exams?")

        stub_db["search_jobs_by_keywords"].assert_not_called()
        stub_db["get_jobs_by_interests"].assert_called_once()
        pathways, _ = stub_db["get_jobs_by_interests"].call_args.args
        assert pathways == ["Banking", "Finance"]

    @pytest.mark.asyncio
    async def test_company_gets_own_postings(self, stub_db):
        stub_db["get_user"].return_value = COMPANY
        stub_db["get_company_profile"].return_value = {
            "company_id": 2, "company_name": "Acme", "company_industry": "Software",
        }
        bundle = await build_context(9, "hello")

        stub_db["get_company_jobs"].assert_called_once()
        assert isinstance(bundle.profile, CompanyProfile)
        # Only students apply for jobs
        stub_db["get_job_applications"].assert_not_called()
        assert bundle.job_applications == ()

    @pytest.mark.asyncio
    async def test_no_matches_fall_back_to_recent_jobs(self, stub_db):
        stub_db["search_jobs_by_keywords"].return_value = []
        stub_db["get_recent_jobs"].return_value = [JOB_ROW]

        bundle = await build_context(7, "Are there any astronaut jobs?")

        stub_db["get_recent_jobs"].assert_called_once()
        assert len(bundle.jobs) == 1

    @pytest.mark.asyncio
    async def test_job_description_snippet(self, stub_db):
        bundle = await build_context(7, "Are there any banking jobs?")
        description = bundle.jobs[0].description
        assert description.endswith("...")
        assert len(description) == 153


# ═══════════════════════════════════════════════════════════════════════════
#  Fault isolation
# ═══════════════════════════════════════════════════════════════════════════

class TestFaultIsolation:
    @pytest.mark.asyncio
    async def test_failing_section_is_empty_others_survive(self, stub_db):
        stub_db["get_upcoming_events"].side_effect = RuntimeError("events table missing")
        stub_db["get_latest_news"].return_value = [{
            "news_id": 1, "title": "Career Fair 2025", "content": "Join us",
            "news_date": date(2025, 3, 1), "image_urls": "a.png, b.png",
        }]

        bundle = await build_context(7, "hello")

        assert bundle is not None
        assert bundle.events == ()
        assert bundle.news[0].title == "Career Fair 2025"
        assert bundle.news[0].image_url == "a.png"

    @pytest.mark.asyncio
    async def test_failing_profile_keeps_bundle(self, stub_db):
        stub_db["get_student_profile"].side_effect = RuntimeError("boom")
        bundle = await build_context(7, "hello")
        assert bundle.profile is None
        assert bundle.user.id == 7

    @pytest.mark.asyncio
    async def test_recent_conversations_projected(self, stub_db):
        stub_db["get_recent_conversations"].return_value = [{
            "id": 5, "title": "CV help", "updated_at": datetime(2025, 1, 2, 9, 0),
            "messages": [
                {"content": "How do I write a CV?", "is_user_message": True,
                 "timestamp": datetime(2025, 1, 2, 9, 0)},
                {"content": "Start with...", "is_user_message": False,
                 "timestamp": datetime(2025, 1, 2, 9, 1)},
            ],
        }]
        bundle = await build_context(7, "hello")
        excerpt = bundle.recent_conversations[0]
        assert excerpt.title == "CV help"
        assert [m.is_user_message for m in excerpt.messages] == [True, False]


# ═══════════════════════════════════════════════════════════════════════════
#  Concurrent requests
# ═══════════════════════════════════════════════════════════════════════════

class TestConcurrentRequests:
    @pytest.mark.asyncio
    async def test_parallel_requests_queue_on_a_small_pool(self, stub_db, small_pool, monkeypatch, caplog):
        in_use = []
        peak = []

        def pooled(stub):
            def call(*args, **kwargs):
                conn = query_db.get_connection()
                in_use.append(conn)
                peak.append(len(in_use))
                try:
                    time.sleep(0.02)
                    return stub(*args, **kwargs)
                finally:
                    in_use.remove(conn)
                    query_db.put_connection(conn)
            return call

        for name, stub in stub_db.items():
            monkeypatch.setattr(query_db, name, pooled(stub))

        with caplog.at_level(logging.WARNING, logger="context_aggregator"):
            bundles = await asyncio.gather(*(build_context(7, "hello") for _ in range(4)))

        assert "Grounding section dropped" not in caplog.text
        assert all(b is not None and b.profile is not None for b in bundles)
        assert all(len(b.jobs) == 1 for b in bundles)
        assert max(peak) <= 2
