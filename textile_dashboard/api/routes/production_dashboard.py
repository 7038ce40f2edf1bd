from datetime import date as date_type
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from textile_dashboard.core.auth.deps import get_company_user
from textile_dashboard.core.models.production_dashboard import (
    MACHINE_ID_PATTERN,
    Alert,
    DailySummary,
    DashboardConfig,
    PerformanceMetrics,
    PrintingMachineStatus,
)
from textile_dashboard.core.schemas.auth import CurrentUser
from textile_dashboard.core.schemas.production_dashboard import (
    AlertCreate,
    AlertResolveRequest,
    ApiResponse,
    DailySummaryCreate,
    DashboardConfigUpdate,
    DashboardCreate,
    DashboardResponse,
    MachineStatusResponse,
    MachineStatusUpdate,
    PerformanceMetricsUpdate,
    PrintingStatusUpdate,
)
from textile_dashboard.modules.production_dashboard.dashboard_service import ProductionDashboardService
from textile_dashboard.shared.timezone import get_utc_now


router = APIRouter(
    prefix="/production-dashboard",
    tags=["Production Dashboard"],
)


def _dashboard_response(dashboard, message: str) -> ApiResponse[DashboardResponse]:
    return ApiResponse[DashboardResponse](
        message=message,
        data=ProductionDashboardService.to_response(dashboard),
    )


# =============================================================================
# DASHBOARD
# =============================================================================

@router.get(
    "",
    response_model=ApiResponse[DashboardResponse],
    summary="Get the company's production dashboard",
    description="""
    Returns the full dashboard of the caller's company: live machine and
    printing status, daily summaries, alerts (newest first), performance
    metrics and display configuration.
    """,
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def get_dashboard(current_user: CurrentUser = Depends(get_company_user)):
    dashboard = await ProductionDashboardService.get_dashboard_or_404(current_user.company_id)
    return _dashboard_response(dashboard, "Production dashboard retrieved successfully")


@router.post(
    "",
    response_model=ApiResponse[DashboardResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Create the company's production dashboard",
    description="""
    Create the dashboard for the caller's company. Each company has at most one
    dashboard; a second create fails with 400.

    **Request Body (optional):**
    - `dashboard_config`: refresh interval, widget toggles and alert thresholds
    - `performance_metrics`: starting metrics snapshot
    """,
    responses={400: {"description": "Dashboard already exists for this company"}},
)
async def create_dashboard(
    payload: Optional[DashboardCreate] = Body(None),
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.create(
        current_user.company_id, payload, current_user.user_id
    )
    return _dashboard_response(dashboard, "Production dashboard created successfully")


# =============================================================================
# MACHINE STATUS
# =============================================================================

@router.get(
    "/machines/{machine_id}",
    response_model=ApiResponse[MachineStatusResponse],
    summary="Get live status of one machine",
    responses={404: {"description": "Dashboard or machine not found"}},
)
async def get_machine_status(
    machine_id: str = Path(..., pattern=MACHINE_ID_PATTERN, description="Machine identifier"),
    current_user: CurrentUser = Depends(get_company_user),
):
    machine = await ProductionDashboardService.get_machine_status(current_user.company_id, machine_id)
    return ApiResponse[MachineStatusResponse](
        message="Machine status retrieved successfully",
        data=machine,
    )


@router.put(
    "/machines/{machine_id}",
    response_model=ApiResponse[DashboardResponse],
    summary="Update live status of one machine",
    description="""
    Merge the sent fields into the machine's live status, adding the machine
    if it is not on the dashboard yet. Fields left out keep their stored value;
    null clears an optional field such as `current_order_id` or `operator_id`.
    `last_updated` is stamped by the server.

    **Validation:**
    - `current_status`: idle, running, maintenance, breakdown, setup, cleaning
    - `efficiency`: 0-100
    """,
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def update_machine_status(
    payload: MachineStatusUpdate,
    machine_id: str = Path(..., pattern=MACHINE_ID_PATTERN, description="Machine identifier"),
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.update_machine_status(
        current_user.company_id, machine_id, payload, current_user.user_id
    )
    return _dashboard_response(dashboard, "Machine status updated successfully")


# =============================================================================
# DAILY SUMMARY
# =============================================================================

@router.get(
    "/daily-summary",
    response_model=ApiResponse[List[DailySummary]],
    summary="Get daily production summaries",
    description="""
    Summaries recorded during the given UTC day (defaults to today).
    Returns an empty list when nothing was recorded or the company has no
    dashboard.
    """,
)
async def get_daily_summary(
    date: Optional[date_type] = Query(None, description="Day (YYYY-MM-DD), UTC"),
    current_user: CurrentUser = Depends(get_company_user),
):
    day = date or get_utc_now().date()
    summaries = await ProductionDashboardService.get_daily_summary(current_user.company_id, day)
    return ApiResponse[List[DailySummary]](
        message="Daily summary retrieved successfully",
        data=summaries,
    )


@router.post(
    "/daily-summary",
    response_model=ApiResponse[DashboardResponse],
    summary="Add a daily production summary",
    description="""
    Append a summary to the dashboard. The summary is dated with the server
    time of the request; historical summaries cannot be backfilled here.

    **Automatic Calculations (when omitted):**
    - `total_cost` = material + labor + machine + overhead
    - `cost_per_unit` = total_cost / completed_quantity
    - `efficiency` = run time / (run + idle + breakdown + setup) x 100
    """,
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def add_daily_summary(
    payload: DailySummaryCreate,
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.add_daily_summary(
        current_user.company_id, payload, current_user.user_id
    )
    return _dashboard_response(dashboard, "Daily summary added successfully")


# =============================================================================
# PRINTING STATUS
# =============================================================================

@router.get(
    "/printing-status",
    response_model=ApiResponse[List[PrintingMachineStatus]],
    summary="Get live status of all printing machines",
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def get_printing_status(current_user: CurrentUser = Depends(get_company_user)):
    machines = await ProductionDashboardService.get_printing_status(current_user.company_id)
    return ApiResponse[List[PrintingMachineStatus]](
        message="Printing status retrieved successfully",
        data=machines,
    )


@router.put(
    "/printing-status/{machine_id}",
    response_model=ApiResponse[DashboardResponse],
    summary="Update live status of one printing machine",
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def update_printing_status(
    payload: PrintingStatusUpdate,
    machine_id: str = Path(..., pattern=MACHINE_ID_PATTERN, description="Machine identifier"),
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.update_printing_status(
        current_user.company_id, machine_id, payload, current_user.user_id
    )
    return _dashboard_response(dashboard, "Printing status updated successfully")


# =============================================================================
# ALERTS
# =============================================================================

@router.get(
    "/alerts/active",
    response_model=ApiResponse[List[Alert]],
    summary="Get unresolved alerts",
    description="Open and acknowledged alerts, newest first. Empty when there are none.",
)
async def get_active_alerts(current_user: CurrentUser = Depends(get_company_user)):
    alerts = await ProductionDashboardService.get_active_alerts(current_user.company_id)
    return ApiResponse[List[Alert]](
        message="Active alerts retrieved successfully",
        data=alerts,
    )


@router.get(
    "/alerts",
    response_model=ApiResponse[List[Alert]],
    summary="Get the alert log",
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def get_alerts(
    include_resolved: bool = Query(True, description="Include resolved alerts"),
    current_user: CurrentUser = Depends(get_company_user),
):
    alerts = await ProductionDashboardService.get_alerts(current_user.company_id, include_resolved)
    return ApiResponse[List[Alert]](
        message="Alerts retrieved successfully",
        data=alerts,
    )


@router.post(
    "/alerts",
    response_model=ApiResponse[DashboardResponse],
    summary="Raise an alert",
    description="""
    Append an alert. The server assigns `alert_id` and `created_at`; the alert
    starts open (not acknowledged, not resolved).
    """,
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def add_alert(
    payload: AlertCreate,
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.add_alert(
        current_user.company_id, payload, current_user.user_id
    )
    return _dashboard_response(dashboard, "Alert added successfully")


@router.patch(
    "/alerts/{alert_id}/acknowledge",
    response_model=ApiResponse[DashboardResponse],
    summary="Acknowledge an alert",
    description="""
    Open -> Acknowledged. Acknowledging an alert that is already acknowledged
    or resolved leaves it unchanged.
    """,
    responses={404: {"description": "Dashboard or alert not found"}},
)
async def acknowledge_alert(
    alert_id: str = Path(..., description="Alert identifier"),
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.acknowledge_alert(
        current_user.company_id, alert_id, current_user.user_id
    )
    return _dashboard_response(dashboard, "Alert acknowledged successfully")


@router.patch(
    "/alerts/{alert_id}/resolve",
    response_model=ApiResponse[DashboardResponse],
    summary="Resolve an alert",
    description="""
    Open or Acknowledged -> Resolved. Acknowledgement is not required first.
    Resolved is final; resolving again keeps the first resolution.
    """,
    responses={404: {"description": "Dashboard or alert not found"}},
)
async def resolve_alert(
    alert_id: str = Path(..., description="Alert identifier"),
    payload: Optional[AlertResolveRequest] = Body(None),
    current_user: CurrentUser = Depends(get_company_user),
):
    notes = payload.resolution_notes if payload else None
    dashboard = await ProductionDashboardService.resolve_alert(
        current_user.company_id, alert_id, current_user.user_id, notes
    )
    return _dashboard_response(dashboard, "Alert resolved successfully")


# =============================================================================
# PERFORMANCE METRICS
# =============================================================================

@router.get(
    "/performance-metrics",
    response_model=ApiResponse[PerformanceMetrics],
    summary="Get performance metrics snapshot",
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def get_performance_metrics(current_user: CurrentUser = Depends(get_company_user)):
    metrics = await ProductionDashboardService.get_performance_metrics(current_user.company_id)
    return ApiResponse[PerformanceMetrics](
        message="Performance metrics retrieved successfully",
        data=metrics,
    )


@router.put(
    "/performance-metrics",
    response_model=ApiResponse[DashboardResponse],
    summary="Update performance metrics snapshot",
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def update_performance_metrics(
    payload: PerformanceMetricsUpdate,
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.update_performance_metrics(
        current_user.company_id, payload, current_user.user_id
    )
    return _dashboard_response(dashboard, "Performance metrics updated successfully")


# =============================================================================
# DASHBOARD CONFIG
# =============================================================================

@router.get(
    "/dashboard-config",
    response_model=ApiResponse[DashboardConfig],
    summary="Get dashboard display configuration",
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def get_dashboard_config(current_user: CurrentUser = Depends(get_company_user)):
    dashboard_config = await ProductionDashboardService.get_dashboard_config(current_user.company_id)
    return ApiResponse[DashboardConfig](
        message="Dashboard configuration retrieved successfully",
        data=dashboard_config,
    )


@router.put(
    "/dashboard-config",
    response_model=ApiResponse[DashboardResponse],
    summary="Update dashboard display configuration",
    responses={404: {"description": "No dashboard configured for this company"}},
)
async def update_dashboard_config(
    payload: DashboardConfigUpdate,
    current_user: CurrentUser = Depends(get_company_user),
):
    dashboard = await ProductionDashboardService.update_dashboard_config(
        current_user.company_id, payload, current_user.user_id
    )
    return _dashboard_response(dashboard, "Dashboard configuration updated successfully")
