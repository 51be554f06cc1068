# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from typing import Optional

import structlog

from resurrectci.adapters.ai.gemini import GeminiClient
from resurrectci.adapters.external.coderabbit import CodeRabbitClient
from resurrectci.adapters.external.github import GitHubClient
from resurrectci.adapters.external.kestra import KestraClient
from resurrectci.adapters.external.vercel import VercelClient
from resurrectci.core.config import Settings, get_settings
from resurrectci.services.analyzer import FixStrategyAnalyzer
from resurrectci.services.ledger import ActionLedger
from resurrectci.services.log_classifier import ErrorDetector, LogClassifier
from resurrectci.services.merge_supervisor import MergeSupervisor
from resurrectci.services.monitor import DeploymentMonitorService
from resurrectci.services.orchestrator import RemediationOrchestrator
from resurrectci.services.patch_builder import PatchBuilder
from resurrectci.services.poller import DeploymentPoller
from resurrectci.services.redeploy import RedeployTrigger
from resurrectci.services.registry import DeploymentRegistry
from resurrectci.services.review import ReviewTrigger
from resurrectci.services.workflow_dispatcher import WorkflowDispatcher

logger = structlog.get_logger(__name__)

_monitor_service: Optional[DeploymentMonitorService] = None


def build_monitor_service(settings: Optional[Settings] = None) -> DeploymentMonitorService:
    """
    Wire adapters and services into a DeploymentMonitorService.

    Every collaborator is created once here and injected; nothing else in the
    package constructs adapters.
    """
    settings = settings or get_settings()

    vercel = VercelClient(settings=settings)
    github = GitHubClient(settings=settings)
    kestra = KestraClient(settings=settings) if settings.kestra_configured else None
    gemini = GeminiClient(settings=settings)
    coderabbit = CodeRabbitClient(github, settings=settings)

    registry = DeploymentRegistry(
        max_deployments=settings.registry_max_deployments,
        max_logs_per_deployment=settings.max_logs_per_deployment,
    )
    ledger = ActionLedger()

    poller = DeploymentPoller(
        vercel,
        registry,
        classifier=LogClassifier(),
        detector=ErrorDetector(registry),
        settings=settings,
    )
    dispatcher = WorkflowDispatcher(kestra, ledger, settings=settings)
    redeployer = RedeployTrigger(vercel, registry, poller, ledger)

    orchestrator = RemediationOrchestrator(
        registry=registry,
        ledger=ledger,
        analyzer=FixStrategyAnalyzer(registry, provider=gemini, settings=settings),
        dispatcher=dispatcher,
        patch_builder=PatchBuilder(github, settings=settings),
        review=ReviewTrigger(coderabbit, ledger),
        merge_supervisor=MergeSupervisor(github, ledger, settings=settings),
        redeployer=redeployer,
        settings=settings,
    )

    logger.info(
        "service_graph_built",
        environment=settings.environment.value,
        kestra=kestra is not None,
        ai_configured=settings.ai_configured,
    )

    return DeploymentMonitorService(
        registry=registry,
        ledger=ledger,
        poller=poller,
        orchestrator=orchestrator,
        redeployer=redeployer,
        dispatcher=dispatcher,
        resources=[client for client in (vercel, github, kestra, gemini) if client is not None],
    )


def get_monitor_service() -> DeploymentMonitorService:
    """FastAPI dependency returning the process-wide monitor service."""
    global _monitor_service
    if _monitor_service is None:
        _monitor_service = build_monitor_service()
    return _monitor_service


def set_monitor_service(service: Optional[DeploymentMonitorService]) -> None:
    global _monitor_service
    _monitor_service = service
