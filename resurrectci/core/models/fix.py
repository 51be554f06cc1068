# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from dataclasses import dataclass
from typing import Optional

from resurrectci.core.enums import FixType, FileAction


@dataclass(frozen=True)
class FileChange:
    """ A single file operation in a fix. """
    path: str
    content: str = ""
    action: FileAction = FileAction.UPDATE


@dataclass(frozen=True)
class FixStrategy:
    """
    Value object describing how a deployment error will be fixed.

    Built once per DeploymentError by the analyzer and never modified.
    """
    type: FixType
    description: str
    changes: tuple[FileChange, ...] = ()
    commit_message: str = "fix: automated error resolution"
    root_cause: Optional[str] = None
    degraded: bool = False

    @property
    def has_changes(self) -> bool:
        return len(self.changes) > 0

    @property
    def paths(self) -> list[str]:
        return [change.path for change in self.changes]

    def to_dict(self) -> dict:
        """ Convert to dictionary """
        return {
            "type": self.type.value,
            "description": self.description,
            "commit_message": self.commit_message,
            "root_cause": self.root_cause,
            "degraded": self.degraded,
            "changes": [
                {"path": c.path, "action": c.action.value} for c in self.changes
            ],
        }


@dataclass(frozen=True)
class AIAnalysis:
    """ Root cause and patch proposed by the AI provider. """
    root_cause: str
    suggested_patch: Optional[str] = None
    prevention: Optional[str] = None
    degraded: bool = False


@dataclass(frozen=True)
class ChangeRequest:
    """ A pull request opened for a fix. """
    number: int
    url: str
    owner: str
    repo: str
    branch: str
    base: str
    title: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"
