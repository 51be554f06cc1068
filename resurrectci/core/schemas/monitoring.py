# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from pydantic import BaseModel, Field, ConfigDict


class AutomationToggleRequest(BaseModel):
    enabled: bool

    model_config = ConfigDict(extra="forbid")


class MonitoringStatusResponse(BaseModel):
    """ Current state of the monitoring loop. """
    monitoring: bool
    automation_enabled: bool
    deployments: int = Field(..., ge=0, description="Deployments known to the registry")
    tracked_deployments: list[str] = Field(default_factory=list)
