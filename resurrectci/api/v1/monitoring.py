# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

from fastapi import APIRouter, Depends
import structlog

from resurrectci.core.schemas.monitoring import AutomationToggleRequest, MonitoringStatusResponse
from resurrectci.dependencies import get_monitor_service
from resurrectci.services.monitor import DeploymentMonitorService

logger = structlog.get_logger(__name__)

router = APIRouter()


def _status(monitor: DeploymentMonitorService) -> MonitoringStatusResponse:
    return MonitoringStatusResponse(
        monitoring=monitor.is_monitoring,
        automation_enabled=monitor.automation_enabled,
        deployments=len(monitor.list_deployments()),
        tracked_deployments=monitor.tracked_deployments(),
    )


@router.get(
    "/monitoring",
    response_model=MonitoringStatusResponse,
    summary="Monitoring status",
)
async def get_monitoring_status(
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> MonitoringStatusResponse:
    return _status(monitor)


@router.post(
    "/monitoring/start",
    response_model=MonitoringStatusResponse,
    summary="Start monitoring",
    description="Start discovering and tracking deployments",
)
async def start_monitoring(
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> MonitoringStatusResponse:
    monitor.start_monitoring()
    return _status(monitor)


@router.post(
    "/monitoring/stop",
    response_model=MonitoringStatusResponse,
    summary="Stop monitoring",
)
async def stop_monitoring(
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> MonitoringStatusResponse:
    monitor.stop_monitoring()
    return _status(monitor)


@router.put(
    "/automation",
    response_model=MonitoringStatusResponse,
    summary="Toggle automation",
    description="Enable or disable automatic remediation of detected errors",
)
async def set_automation(
    request: AutomationToggleRequest,
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> MonitoringStatusResponse:
    monitor.set_automation_enabled(request.enabled)
    return _status(monitor)
