"""
Line search across the loaded job logs of a run.
"""

import re
from dataclasses import dataclass, field
from typing import Callable


@dataclass(frozen=True)
class SearchQuery:
    pattern: str
    is_regex: bool = False
    case_sensitive: bool = False
    failed_only: bool = False
    job_pattern: str = ""

    @classmethod
    def parse(cls, text: str) -> "SearchQuery":
        """A leading "/" makes the rest of the text a regular expression."""
        if len(text) > 1 and text.startswith("/"):
            return cls(pattern=text[1:], is_regex=True)
        return cls(pattern=text)


@dataclass(frozen=True)
class SearchMatch:
    job_name: str
    line: int  # 1-based
    content: str


@dataclass
class SearchResults:
    query: SearchQuery
    matches: list[SearchMatch] = field(default_factory=list)
    job_counts: dict[str, int] = field(default_factory=dict)
    error: str = ""

    @property
    def total_count(self) -> int:
        return len(self.matches)


def _build_matcher(query: SearchQuery) -> Callable[[str], bool]:
    if query.is_regex:
        flags = 0 if query.case_sensitive else re.IGNORECASE
        compiled = re.compile(query.pattern, flags)
        return lambda line: compiled.search(line) is not None
    if query.case_sensitive:
        return lambda line: query.pattern in line
    needle = query.pattern.lower()
    return lambda line: needle in line.lower()


def search_logs(
    logs: dict[str, str],
    query: SearchQuery,
    failed_jobs: set[str] | None = None,
) -> SearchResults:
    """
    Find every matching line, grouped in job-name order.

    An invalid regular expression yields an empty result carrying the error text.
    """
    results = SearchResults(query=query)
    if not query.pattern:
        return results
    try:
        matcher = _build_matcher(query)
        job_re = re.compile(query.job_pattern) if query.job_pattern else None
    except re.error as e:
        results.error = f"invalid pattern: {e}"
        return results

    for job_name in sorted(logs):
        if query.failed_only and failed_jobs is not None and job_name not in failed_jobs:
            continue
        if job_re is not None and not job_re.search(job_name):
            continue
        for number, line in enumerate(logs[job_name].split("\n"), start=1):
            if matcher(line):
                results.matches.append(SearchMatch(job_name=job_name, line=number, content=line))
                results.job_counts[job_name] = results.job_counts.get(job_name, 0) + 1
    return results


def find_line_matches(content: str, needle: str) -> list[int]:
    """0-based indexes of lines containing needle, case-insensitively (in-log search)."""
    if not needle:
        return []
    needle = needle.lower()
    return [i for i, line in enumerate(content.split("\n")) if needle in line.lower()]
