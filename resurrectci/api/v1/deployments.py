# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Deployment Endpoints

Read deployments, their errors and remediation actions; track or trigger deployments.
"""

from typing import Optional, List
from fastapi import APIRouter, Depends, Query, status
import structlog

from resurrectci.core.enums import DeploymentStatus
from resurrectci.core.schemas.common import SuccessResponse
from resurrectci.core.schemas.deployment import (
    ActionResponse,
    DeploymentDetailResponse,
    DeploymentErrorResponse,
    DeploymentResponse,
    TriggerDeploymentRequest,
)
from resurrectci.dependencies import get_monitor_service
from resurrectci.services.monitor import DeploymentMonitorService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get(
    "/deployments",
    response_model=List[DeploymentResponse],
    summary="List deployments",
    description="Deployments known to the registry, newest first",
)
async def list_deployments(
    deployment_status: Optional[DeploymentStatus] = Query(None, alias="status", description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of deployments to return"),
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> List[DeploymentResponse]:
    deployments = monitor.list_deployments()
    if deployment_status is not None:
        deployments = [d for d in deployments if d.status == deployment_status]
    return [DeploymentResponse.model_validate(d) for d in deployments[:limit]]


@router.post(
    "/deployments",
    response_model=DeploymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Trigger deployment",
    description="Start a deployment on the platform and track it",
)
async def trigger_deployment(
    request: TriggerDeploymentRequest,
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> DeploymentResponse:
    logger.info(
        "trigger_deployment_request",
        project=request.project,
        environment=request.environment.value,
        branch=request.branch,
    )
    deployment = await monitor.trigger_deployment(
        request.project,
        environment=request.environment,
        branch=request.branch,
        repository=request.repository,
    )
    return DeploymentResponse.model_validate(deployment)


@router.get(
    "/deployments/{deployment_id}",
    response_model=DeploymentDetailResponse,
    summary="Get deployment",
)
async def get_deployment(
    deployment_id: str,
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> DeploymentDetailResponse:
    return DeploymentDetailResponse.model_validate(monitor.get_deployment(deployment_id))


@router.get(
    "/deployments/{deployment_id}/errors",
    response_model=List[DeploymentErrorResponse],
    summary="List deployment errors",
)
async def get_deployment_errors(
    deployment_id: str,
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> List[DeploymentErrorResponse]:
    return [DeploymentErrorResponse.model_validate(e) for e in monitor.get_errors_for(deployment_id)]


@router.get(
    "/deployments/{deployment_id}/actions",
    response_model=List[ActionResponse],
    summary="List remediation actions",
    description="Automated actions recorded for a deployment, newest first",
)
async def get_deployment_actions(
    deployment_id: str,
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> List[ActionResponse]:
    return [ActionResponse.model_validate(a) for a in monitor.get_actions_for(deployment_id)]


@router.post(
    "/deployments/{deployment_id}/track",
    response_model=SuccessResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Track deployment",
    description="Start polling a deployment's status and build logs",
)
async def track_deployment(
    deployment_id: str,
    monitor: DeploymentMonitorService = Depends(get_monitor_service),
) -> SuccessResponse:
    monitor.track_deployment(deployment_id)
    logger.info("track_deployment_request", deployment_id=deployment_id)
    return SuccessResponse(
        message=f"Tracking deployment {deployment_id}",
        data={"deployment_id": deployment_id},
    )
