# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from resurrectci.core.schemas.common import ErrorResponse, HealthResponse, SuccessResponse
from resurrectci.core.schemas.deployment import (
    ActionResponse,
    DeploymentDetailResponse,
    DeploymentErrorResponse,
    DeploymentResponse,
    FileChangeResponse,
    FixStrategyResponse,
    LogEntryResponse,
    TriggerDeploymentRequest,
)
from resurrectci.core.schemas.monitoring import AutomationToggleRequest, MonitoringStatusResponse

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "SuccessResponse",
    "ActionResponse",
    "DeploymentDetailResponse",
    "DeploymentErrorResponse",
    "DeploymentResponse",
    "FileChangeResponse",
    "FixStrategyResponse",
    "LogEntryResponse",
    "TriggerDeploymentRequest",
    "AutomationToggleRequest",
    "MonitoringStatusResponse",
]
