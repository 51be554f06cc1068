# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from resurrectci.core.models.fix import FileChange, FixStrategy, AIAnalysis, ChangeRequest
from resurrectci.core.models.deployment import Deployment, DeploymentError, LogEntry, utcnow, new_id
from resurrectci.core.models.action import AutomatedAction

__all__ = [
    "Deployment",
    "DeploymentError",
    "LogEntry",
    "FileChange",
    "FixStrategy",
    "AIAnalysis",
    "ChangeRequest",
    "AutomatedAction",
    "utcnow",
    "new_id",
]
