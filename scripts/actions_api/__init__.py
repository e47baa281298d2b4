"""
actions_api - Client facade for the remote CI/CD (GitHub Actions) API.

Usage:
    from actions_api import get_client, RunsFilter

    client = get_client(settings)
    page = client.list_runs(RunsFilter(status="in_progress"))
    for run in page.runs:
        print(run.id, run.display_title)
"""

from .base import (
    ActionsClient,
    ApiError,
    AuthenticationError,
    JobsFilter,
    NotFoundError,
    RateLimitError,
    RunsFilter,
)
from .models import (
    ActionsCache,
    Actor,
    CachesPage,
    Job,
    JobsPage,
    RateLimit,
    Run,
    Runner,
    RunsPage,
    Step,
    Workflow,
    WorkflowStats,
)


def get_client(settings) -> ActionsClient:
    """
    Factory function building the API client from resolved settings.

    Args:
        settings: gha_utils.Settings with owner, repo, token, api_url and timeouts

    Returns:
        ActionsClient instance for the configured repository
    """
    from .github import GitHubActionsClient

    return GitHubActionsClient(
        settings.owner,
        settings.repo,
        token=settings.token,
        base_url=settings.api_url,
        timeout=settings.request_timeout,
        download_timeout=settings.download_timeout,
    )


__all__ = [
    "ActionsClient",
    "ApiError",
    "AuthenticationError",
    "NotFoundError",
    "RateLimitError",
    "RunsFilter",
    "JobsFilter",
    "ActionsCache",
    "Actor",
    "CachesPage",
    "Job",
    "JobsPage",
    "RateLimit",
    "Run",
    "Runner",
    "RunsPage",
    "Step",
    "Workflow",
    "WorkflowStats",
    "get_client",
]
