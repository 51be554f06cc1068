# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict

from resurrectci.core.enums import (
    ActionStatus,
    ActionType,
    DeploymentEnvironment,
    DeploymentStatus,
    ErrorStatus,
    FileAction,
    FixType,
    LogLevel,
    LogSource,
)


class LogEntryResponse(BaseModel):
    id: str
    deployment_id: str
    message: str
    level: LogLevel
    source: LogSource
    timestamp: datetime
    position: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class FileChangeResponse(BaseModel):
    path: str
    action: FileAction

    model_config = ConfigDict(from_attributes=True)


class FixStrategyResponse(BaseModel):
    """ Fix chosen for a deployment error. File contents are not exposed. """
    type: FixType
    description: str
    commit_message: str
    root_cause: Optional[str] = None
    degraded: bool = False
    changes: list[FileChangeResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class DeploymentErrorResponse(BaseModel):
    id: str
    deployment_id: str
    error_text: str
    status: ErrorStatus
    timestamp: datetime
    analysis: Optional[str] = None
    suggested_fix: Optional[FixStrategyResponse] = None
    fix_applied: bool = False
    logs: list[LogEntryResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class DeploymentResponse(BaseModel):
    """ Deployment summary without logs. """
    id: str
    name: str
    status: DeploymentStatus
    environment: DeploymentEnvironment
    branch: str
    commit: Optional[str] = None
    created_at: datetime
    url: Optional[str] = None
    duration: Optional[str] = None
    repository: Optional[str] = None
    project_id: Optional[str] = None
    parent_deployment_id: Optional[str] = None
    remediation_depth: int = 0

    model_config = ConfigDict(from_attributes=True)


class DeploymentDetailResponse(DeploymentResponse):
    logs: list[LogEntryResponse] = Field(default_factory=list)
    errors: list[DeploymentErrorResponse] = Field(default_factory=list)


class ActionResponse(BaseModel):
    id: str
    deployment_id: str
    error_id: Optional[str] = None
    type: ActionType
    description: str
    status: ActionStatus
    result: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TriggerDeploymentRequest(BaseModel):
    """ Request body for starting a deployment. """
    project: str = Field(..., min_length=1, description="Platform project name or id")
    environment: DeploymentEnvironment = Field(DeploymentEnvironment.PRODUCTION)
    branch: str = Field("main", min_length=1)
    repository: Optional[str] = Field(None, pattern=r"^[\w.-]+/[\w.-]+$", description="owner/repo")

    model_config = ConfigDict(extra="forbid")
