# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

import re
from typing import Iterable, List, Optional
import structlog

from resurrectci.core.enums import LogLevel, LogSource
from resurrectci.core.models import DeploymentError, LogEntry
from resurrectci.core.ports import PlatformLogEvent
from resurrectci.services.registry import DeploymentRegistry

logger = structlog.get_logger(__name__)


class LogClassifier:
    """
    Tags platform log events with a level and a pipeline source.

    The platform's own event type wins when it is explicit (stderr, error,
    warning); otherwise the message text decides.
    """

    ERROR_KINDS = {"stderr", "error", "fatal"}
    WARN_KINDS = {"warning", "warn"}

    # First match wins
    SOURCE_KEYWORDS = [
        (LogSource.GIT, ("git", "clone", "cloning", "commit")),
        (LogSource.DEPENDENCY, ("npm", "yarn", "pnpm", "install")),
        (LogSource.BUILD, ("build", "compile")),
        (LogSource.DEPLOY, ("deploy", "upload")),
    ]

    ANSI_ESCAPE = re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])')
    MAX_LINE_LENGTH = 10000

    def clean_line(self, line: str) -> str:
        """Remove ANSI codes and trailing whitespace."""
        if len(line) > self.MAX_LINE_LENGTH:
            line = line[:self.MAX_LINE_LENGTH]
        return self.ANSI_ESCAPE.sub('', line).rstrip()

    def classify_level(self, message: str, kind: Optional[str] = None) -> LogLevel:
        if kind:
            kind = kind.lower()
            if kind in self.ERROR_KINDS:
                return LogLevel.ERROR
            if kind in self.WARN_KINDS:
                return LogLevel.WARN

        lowered = message.lower()
        if "error" in lowered:
            return LogLevel.ERROR
        if "warn" in lowered:
            return LogLevel.WARN
        return LogLevel.INFO

    def classify_source(self, message: str) -> LogSource:
        lowered = message.lower()
        for source, keywords in self.SOURCE_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return source
        return LogSource.BUILD

    def to_entry(self, deployment_id: str, event: PlatformLogEvent) -> LogEntry:
        message = self.clean_line(event.message)
        kwargs = {}
        if event.timestamp is not None:
            kwargs["timestamp"] = event.timestamp
        return LogEntry(
            deployment_id=deployment_id,
            message=message,
            level=self.classify_level(message, event.kind),
            source=self.classify_source(message),
            position=event.position,
            **kwargs,
        )

    def to_entries(self, deployment_id: str, events: Iterable[PlatformLogEvent]) -> List[LogEntry]:
        return [self.to_entry(deployment_id, event) for event in events if event.message.strip()]


class ErrorDetector:
    """
    Turns newly stored error-level log entries into DeploymentErrors.

    At most one DeploymentError is created per batch, and none while another
    error on the same deployment is still being remediated.
    """

    MAX_ERROR_LINES = 20

    def __init__(self, registry: DeploymentRegistry):
        self.registry = registry

    def detect(self, deployment_id: str, new_entries: List[LogEntry]) -> Optional[DeploymentError]:
        """
        Inspect entries just appended to a deployment.

        Args:
            deployment_id: Deployment the entries belong to
            new_entries: Entries returned by `DeploymentRegistry.append_logs`

        Returns:
            The newly registered error, or None
        """
        new_errors = [entry for entry in new_entries if entry.is_error]
        if not new_errors:
            return None

        deployment = self.registry.require(deployment_id)
        outstanding = deployment.outstanding_error()
        if outstanding is not None:
            logger.debug(
                "error_detection_suppressed",
                deployment_id=deployment_id,
                outstanding_error_id=outstanding.id,
                new_error_lines=len(new_errors),
            )
            return None

        error_text = "\n".join(entry.message for entry in new_errors[:self.MAX_ERROR_LINES])
        error = DeploymentError(
            deployment_id=deployment_id,
            error_text=error_text,
            logs=tuple(deployment.error_logs()),
        )
        return self.registry.add_error(deployment_id, error, exclusive=True)
