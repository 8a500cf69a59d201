"""Job-search intent heuristics: no LLM round-trip.

``is_job_search_query`` decides whether the grounding stage should run the
keyword job search instead of the profile-interest lookup, and
``extract_job_keywords`` turns the message into search terms.
"""

from __future__ import annotations

import re

# Industry vocabulary that signals job-search intent on its own.
INDUSTRY_TERMS = [
    "banking", "finance", "accounting", "marketing", "sales", "engineering",
    "software", "development", "IT", "healthcare", "medical", "legal",
    "education", "teaching", "hospitality", "retail", "manufacturing",
    "construction", "design", "media", "communications", "human resources",
    "HR", "administration", "customer service", "data", "science", "research",
]

# Role / seniority vocabulary kept as keywords but not an intent signal.
ROLE_TERMS = [
    "analyst", "manager", "director", "assistant", "specialist", "coordinator",
    "executive", "associate", "consultant", "technician", "developer", "engineer",
    "architect", "designer", "writer", "editor", "full-time", "part-time", "contract",
    "internship", "entry-level", "junior", "senior", "lead", "head", "chief",
]

# Acronyms collide with ordinary words ("it"), so they match case-sensitively.
_ACRONYMS = {"IT", "HR"}

JOB_TERM_PATTERNS = [
    r"\bjobs?\b", r"\bcareers?\b", r"\bpositions?\b", r"\bopenings?\b",
    r"\bvacanc(?:y|ies)\b", r"\bemployment\b", r"\bhire\b", r"\bhiring\b",
    r"\bwork\b", r"\bopportunit(?:y|ies)\b", r"\broles?\b", r"\bapply\b",
    r"\bapplications?\b", r"\binterviews?\b", r"\brecruit\w*",
]

QUESTION_PATTERNS = [
    r"\bare there\b", r"\bis there\b", r"\bdo you have\b", r"\bcan i find\b",
    r"\blooking for\b", r"\bsearching for\b", r"\binterested in\b",
    r"\bavailable\b", r"\bshow me\b", r"\btell me about\b", r"\bany\b",
    r"\blist\b", r"\bwhat\b", r"\bwhere\b", r"\bhow\b", r"\brelated to\b",
    r"\bin the field of\b", r"\bfind\b", r"\bsearch\b",
]

_QUESTION_PHRASES = re.compile(
    r"\b(?:are there|is there|do you have|can i find|looking for|searching for|"
    r"interested in|available|show me|tell me about|any)\b",
    re.IGNORECASE,
)
_GENERIC_JOB_WORDS = re.compile(
    r"\b(?:jobs?|careers?|positions?|openings?|vacanc(?:y|ies)|employment|hire|"
    r"hiring|work|opportunit(?:y|ies))\b",
    re.IGNORECASE,
)
_FILLER_WORDS = re.compile(
    r"\b(?:a|an|the|in|on|at|for|with|about|of|to|by|as|if|or|and|but|"
    r"i|me|my|we|you|there|are|is|do|what|which|where|how|please)\b",
    re.IGNORECASE,
)
_NON_WORD = re.compile(r"[^\w\s-]")
_SPACES = re.compile(r"\s+")


def _vocabulary_pattern(terms: list[str]) -> re.Pattern:
    words = sorted((t for t in terms if t not in _ACRONYMS), key=len, reverse=True)
    acronyms = "|".join(sorted(a for a in terms if a in _ACRONYMS))
    alternation = "|".join(re.escape(w) for w in words)
    if acronyms:
        # Inline (?-i:...) keeps the acronym branch case-sensitive.
        alternation += f"|(?-i:{acronyms})"
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


_INDUSTRY_RE = _vocabulary_pattern(INDUSTRY_TERMS)
_KEYWORD_RE = _vocabulary_pattern(INDUSTRY_TERMS + ROLE_TERMS)
_JOB_TERM_RES = [re.compile(p, re.IGNORECASE) for p in JOB_TERM_PATTERNS]
_QUESTION_RES = [re.compile(p, re.IGNORECASE) for p in QUESTION_PATTERNS]


def is_job_search_query(message: str | None) -> bool:
    """True when the message looks like a request to find job postings.

    A job term plus a question/search phrase qualifies, as does an industry
    term plus either of the other two signals.
    """
    if not message:
        return False
    has_job_term = any(p.search(message) for p in _JOB_TERM_RES)
    has_question = any(p.search(message) for p in _QUESTION_RES)
    has_industry = bool(_INDUSTRY_RE.search(message))
    return (has_job_term and has_question) or (has_industry and (has_job_term or has_question))


def extract_job_keywords(message: str | None) -> list[str]:
    """Extract search terms, industry and role vocabulary first.

    "Are there any banking jobs?"  → ["banking"]
    "Show me senior software engineer openings in Colombo"
        → ["senior", "software", "engineer", "colombo"]
    """
    if not message:
        return []

    terms: list[str] = []
    for match in _KEYWORD_RE.finditer(message):
        term = match.group(0).lower()
        if term not in terms:
            terms.append(term)

    cleaned = _QUESTION_PHRASES.sub(" ", message)
    cleaned = _GENERIC_JOB_WORDS.sub(" ", cleaned)
    cleaned = _NON_WORD.sub(" ", cleaned)
    cleaned = _FILLER_WORDS.sub(" ", cleaned)
    cleaned = _SPACES.sub(" ", cleaned).strip()

    for word in cleaned.split(" "):
        word = word.strip("-").lower()
        if len(word) > 1 and word not in terms:
            terms.append(word)
    return terms
