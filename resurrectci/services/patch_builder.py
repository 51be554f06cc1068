# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Patch Builder

Publishes a FixStrategy as a pull request: a fresh branch off the failing
deployment's branch, one commit per file change, then the PR itself.
"""

import secrets
import time
from typing import Optional, Tuple

import structlog

from resurrectci.core.config import Settings, get_settings
from resurrectci.core.enums import FileAction
from resurrectci.core.models import ChangeRequest, Deployment, FixStrategy
from resurrectci.core.ports import SourceControlHost
from resurrectci.exceptions import PatchBuildError, ResurrectCIException
from resurrectci.services import templates
from resurrectci.services.analyzer import ManifestReader

logger = structlog.get_logger(__name__)


def resolve_repository(deployment: Deployment, settings: Settings) -> Optional[Tuple[str, str]]:
    """
    Find the (owner, repo) a deployment builds from.

    Tries the repository recorded by the platform, then an "owner/repo"
    deployment name, then the configured default owner with the deployment name.
    """
    for candidate in (deployment.repository, deployment.name):
        if candidate and candidate.count("/") == 1:
            owner, repo = candidate.split("/")
            if owner and repo:
                return owner, repo

    if settings.github_default_owner and deployment.name:
        return settings.github_default_owner, deployment.name
    return None


def generate_branch_name() -> str:
    return f"resurrect-fix-{int(time.time() * 1000)}-{secrets.token_hex(3)}"


class PatchBuilder:
    """
    Turns a FixStrategy into a pull request.

    Example:
        ```python
        builder = PatchBuilder(github)
        change = await builder.build(deployment, strategy)
        print(f"PR created: {change.url}")
        ```
    """

    def __init__(self, host: SourceControlHost, settings: Optional[Settings] = None):
        self.host = host
        self.settings = settings or get_settings()

    def repository_for(self, deployment: Deployment) -> Tuple[str, str]:
        repository = resolve_repository(deployment, self.settings)
        if repository is None:
            raise PatchBuildError(
                deployment.id,
                "resolve_repository",
                "No repository is linked to the deployment and GITHUB_DEFAULT_OWNER is not set",
            )
        return repository

    def manifest_reader(self, deployment: Deployment) -> Optional[ManifestReader]:
        """Reader for files on the deployment's branch, or None when the repository is unknown."""
        repository = resolve_repository(deployment, self.settings)
        if repository is None:
            return None
        owner, repo = repository

        async def read(path: str) -> Optional[str]:
            return await self.host.get_file_content(owner, repo, path, ref=deployment.branch)

        return read

    async def build(self, deployment: Deployment, strategy: FixStrategy) -> ChangeRequest:
        """
        Create a fix branch, apply the strategy's changes and open a PR.

        Args:
            deployment: The failed deployment
            strategy: Fix to publish

        Returns:
            The opened pull request

        Raises:
            PatchBuildError: If the strategy has no changes or any step fails
        """
        if not strategy.has_changes:
            raise PatchBuildError(deployment.id, "plan", "Fix strategy contains no file changes")

        owner, repo = self.repository_for(deployment)
        base = deployment.branch
        branch = generate_branch_name()

        logger.info(
            "pr_creation_start",
            deployment_id=deployment.id,
            owner=owner,
            repo=repo,
            fix_type=strategy.type.value,
            files=strategy.paths,
        )

        stage = "create_branch"
        try:
            await self.host.create_branch(owner, repo, branch, base)
            logger.info("branch_created", owner=owner, repo=repo, branch=branch)

            for change in strategy.changes:
                stage = f"write:{change.path}"
                if change.action == FileAction.DELETE:
                    await self.host.delete_file(owner, repo, change.path, strategy.commit_message, branch)
                else:
                    await self.host.update_file(
                        owner, repo, change.path, change.content, strategy.commit_message, branch
                    )

            stage = "create_pull_request"
            change_request = await self.host.create_change_request(
                owner,
                repo,
                title=templates.pr_title(strategy),
                body=templates.pr_body(deployment, strategy),
                head=branch,
                base=base,
            )

        except ResurrectCIException as e:
            logger.error(
                "pr_creation_failed",
                deployment_id=deployment.id,
                owner=owner,
                repo=repo,
                stage=stage,
                error=str(e),
            )
            raise PatchBuildError(deployment.id, stage, e.message) from e

        logger.info(
            "pr_created_success",
            deployment_id=deployment.id,
            pr_number=change_request.number,
            pr_url=change_request.url,
            files_changed=len(strategy.changes),
        )
        return change_request
