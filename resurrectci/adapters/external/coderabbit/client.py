# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
CodeRabbit integration.

CodeRabbit runs as a GitHub App, so both the installation probe and the review
request go through the GitHub API: the probe looks for a CodeRabbit config file
in the repository and the request posts the review command as a PR comment.
"""

from typing import Optional

from resurrectci.adapters.external.github.client import GitHubClient
from resurrectci.core.config import Settings, get_settings
from resurrectci.core.models import ChangeRequest
from resurrectci.core.ports import CodeReviewService
from resurrectci.exceptions import CodeRabbitError, GitHubAPIError
from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)

CONFIG_FILES = (".coderabbit.yaml", ".coderabbit.yml")


class CodeRabbitClient(CodeReviewService):
    """Request CodeRabbit reviews on pull requests opened by the remediation loop."""

    def __init__(self, github: GitHubClient, settings: Optional[Settings] = None):
        self.github = github
        self.settings = settings or get_settings()

    async def is_installed(self, owner: str, repo: str) -> bool:
        if self.settings.coderabbit_enabled:
            return True

        for path in CONFIG_FILES:
            try:
                if await self.github.get_file(owner, repo, path) is not None:
                    logger.debug("coderabbit_config_found", owner=owner, repo=repo, path=path)
                    return True
            except GitHubAPIError as e:
                logger.warning(
                    "coderabbit_probe_failed",
                    owner=owner,
                    repo=repo,
                    path=path,
                    error=str(e),
                )
                return False

        return False

    async def request_review(self, change: ChangeRequest) -> None:
        """
        Post the review command on the pull request.

        Raises:
            CodeRabbitError: If the comment cannot be posted
        """
        try:
            await self.github.create_issue_comment(
                change.owner,
                change.repo,
                change.number,
                self.settings.coderabbit_review_command,
            )
        except GitHubAPIError as e:
            raise CodeRabbitError(
                f"Could not request review on {change.full_name}#{change.number}: {e.message}",
                status_code=e.status_code,
            ) from e

        logger.info("coderabbit_review_requested", repository=change.full_name, pr_number=change.number)
