# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from enum import Enum

class DeploymentStatus(str, Enum):
    """ Lifecycle status of a deployment. """
    QUEUED = "queued"
    BUILDING = "building"
    READY = "ready"
    ERROR = "error"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """ Terminal deployments are no longer polled. """
        return self in (DeploymentStatus.READY, DeploymentStatus.ERROR, DeploymentStatus.CANCELED)

class DeploymentEnvironment(str, Enum):
    """ Target environment of a deployment. """
    PRODUCTION = "production"
    PREVIEW = "preview"
    DEVELOPMENT = "development"

class LogLevel(str, Enum):
    """ Severity of a single deployment log line. """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

class LogSource(str, Enum):
    """ Pipeline stage a log line came from. """
    BUILD = "build"
    GIT = "git"
    DEPENDENCY = "dependency"
    DEPLOY = "deploy"
    SYSTEM = "system"
    AI = "ai"

class ErrorStatus(str, Enum):
    """ Progress of a detected deployment error through remediation. """
    DETECTED = "detected"
    ANALYZING = "analyzing"
    FIXING = "fixing"
    RESOLVED = "resolved"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _ERROR_STATUS_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ErrorStatus.RESOLVED, ErrorStatus.FAILED)

_ERROR_STATUS_RANK = {
    ErrorStatus.DETECTED: 0,
    ErrorStatus.ANALYZING: 1,
    ErrorStatus.FIXING: 2,
    ErrorStatus.RESOLVED: 3,
    ErrorStatus.FAILED: 3,
}

class FixType(str, Enum):
    """ Category of automated fix. """
    DEPENDENCY = "dependency"
    SYNTAX = "syntax"
    CONFIG = "config"
    BUILD_SCRIPT = "build_script"

class FileAction(str, Enum):
    """ What a file change does to the target path. """
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

class ActionType(str, Enum):
    """ Type of orchestration step recorded in the ledger """
    ANALYZE_CODE = "analyze_code"
    TRIGGER_WORKFLOW = "trigger_workflow"
    CREATE_PR = "create_pr"
    FIX_ISSUE = "fix_issue"
    RETRY_DEPLOYMENT = "retry_deployment"

class ActionStatus(str, Enum):
    """ Status of an automated action """
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ActionStatus.COMPLETED, ActionStatus.FAILED)

class ExecutionState(str, Enum):
    """ Workflow engine execution state. """
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    KILLED = "KILLED"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionState.SUCCESS, ExecutionState.FAILED, ExecutionState.KILLED)

class CheckState(str, Enum):
    """ Aggregated CI check state of a pull request. """
    PENDING = "pending"
    PASSING = "passing"
    FAILING = "failing"
    NO_CHECKS = "no_checks"

class Environment(str, Enum):
    """ Runtime environment of this service """
    DEVELOPMENT = "dev"
    STAGING = "staging"
    PRODUCTION = "prod"
    TEST = "test"

class AppLogLevel(str, Enum):
    """ Logging level of this service """
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
