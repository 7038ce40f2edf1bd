from typing import Any, Generic, List, Optional, TypeVar
from datetime import datetime

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from textile_dashboard.core.models.production_dashboard import (
    AlertSeverity,
    AlertType,
    MachineState,
    MachineType,
    PrintingMachineType,
    PrintingState,
    QualityGrade,
    Shift,
    Alert,
    DailySummary as DailySummarySchema,
    DashboardConfig as DashboardConfigSchema,
    MachineStatus as MachineStatusSchema,
    PerformanceMetrics as PerformanceMetricsSchema,
    PrintingMachineStatus as PrintingMachineStatusSchema,
)

T = TypeVar("T")


# -----------------------------
# Response Envelope
# -----------------------------

class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str
    data: Optional[T] = None
    error: Optional[Any] = None


# -----------------------------
# Machine Status Patches
# -----------------------------

class MachineStatusUpdate(BaseModel):
    """Partial machine status. Only the fields sent are merged."""

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "machine_name": "Jet Washer 2",
                "machine_type": "washing",
                "current_status": "running",
                "efficiency": 82.5,
                "shift": "morning"
            }
        }
    )

    machine_name: Optional[str] = Field(None, min_length=1)
    machine_type: Optional[MachineType] = None
    current_status: Optional[MachineState] = None
    current_order_id: Optional[str] = None
    current_order_number: Optional[str] = None
    current_product: Optional[str] = None
    current_design: Optional[str] = None
    current_color: Optional[str] = None
    current_gsm: Optional[float] = Field(None, ge=0)
    start_time: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    current_quantity: Optional[float] = Field(None, ge=0)
    target_quantity: Optional[float] = Field(None, ge=0)
    completed_quantity: Optional[float] = Field(None, ge=0)
    efficiency: Optional[float] = Field(None, ge=0, le=100)
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    shift: Optional[Shift] = None


class PrintingStatusUpdate(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "machine_name": "Rotary Printer 1",
                "machine_type": "machine_printing",
                "current_status": "printing",
                "current_fabric": "Cotton Poplin",
                "printing_speed": 45
            }
        }
    )

    machine_name: Optional[str] = Field(None, min_length=1)
    machine_type: Optional[PrintingMachineType] = None
    current_status: Optional[PrintingState] = None
    current_order_id: Optional[str] = None
    current_order_number: Optional[str] = None
    current_design: Optional[str] = None
    current_color: Optional[str] = None
    current_fabric: Optional[str] = None
    current_gsm: Optional[float] = Field(None, ge=0)
    start_time: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None
    current_quantity: Optional[float] = Field(None, ge=0)
    target_quantity: Optional[float] = Field(None, ge=0)
    completed_quantity: Optional[float] = Field(None, ge=0)
    printing_speed: Optional[float] = Field(None, ge=0)
    quality_check_required: Optional[bool] = None
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None


class MachineStatusResponse(BaseModel):
    real_time: Optional[MachineStatusSchema] = None
    printing: Optional[PrintingMachineStatusSchema] = None


# -----------------------------
# Daily Summary Input
# -----------------------------

class DailySummaryCreate(BaseModel):
    """
    Daily summary as submitted by a supervisor.

    There is no `date` field: the server stamps the submission time.
    `total_cost`, `cost_per_unit` and `efficiency` are derived when omitted.
    """

    model_config = ConfigDict(extra="forbid")

    firm_id: Optional[str] = None
    firm_name: str = Field(..., min_length=1)
    machine_id: Optional[str] = None
    machine_name: str = Field(..., min_length=1)
    machine_type: Optional[MachineType] = None
    shift: Optional[Shift] = None

    total_orders: int = Field(0, ge=0)
    completed_orders: int = Field(0, ge=0)
    pending_orders: int = Field(0, ge=0)
    total_quantity: float = Field(0, ge=0)
    completed_quantity: float = Field(0, ge=0)
    pending_quantity: float = Field(0, ge=0)

    total_produced: float = Field(0, ge=0)
    approved_quantity: float = Field(0, ge=0)
    rejected_quantity: float = Field(0, ge=0)
    rework_quantity: float = Field(0, ge=0)
    quality_grade: Optional[QualityGrade] = None

    total_run_time: float = Field(0, ge=0, description="Minutes")
    total_idle_time: float = Field(0, ge=0, description="Minutes")
    total_breakdown_time: float = Field(0, ge=0, description="Minutes")
    total_setup_time: float = Field(0, ge=0, description="Minutes")
    efficiency: Optional[float] = Field(None, ge=0, le=100)

    material_cost: float = Field(0, ge=0)
    labor_cost: float = Field(0, ge=0)
    machine_cost: float = Field(0, ge=0)
    overhead_cost: float = Field(0, ge=0)
    total_cost: Optional[float] = Field(None, ge=0)
    cost_per_unit: Optional[float] = Field(None, ge=0)

    issues: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    supervisor_id: Optional[str] = None
    supervisor_name: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None


# -----------------------------
# Alerts
# -----------------------------

class AlertCreate(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "type": "low_efficiency",
                "severity": "medium",
                "message": "M1 below target",
                "machine_id": "M1"
            }
        }
    )

    type: AlertType
    severity: AlertSeverity = "medium"
    message: str = Field(..., min_length=1)
    machine_id: Optional[str] = None
    machine_name: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None


class AlertResolveRequest(BaseModel):
    resolution_notes: Optional[str] = Field(None, max_length=2000)


# -----------------------------
# Metrics & Config Patches
# -----------------------------

class PerformanceMetricsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    overall_efficiency: Optional[float] = Field(None, ge=0, le=100)
    total_production: Optional[float] = Field(None, ge=0)
    total_orders: Optional[int] = Field(None, ge=0)
    completed_orders: Optional[int] = Field(None, ge=0)
    pending_orders: Optional[int] = Field(None, ge=0)
    average_quality: Optional[float] = Field(None, ge=0, le=100)
    total_cost: Optional[float] = Field(None, ge=0)


class AlertThresholdsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    low_efficiency: Optional[float] = Field(None, ge=0, le=100)
    high_rejection: Optional[float] = Field(None, ge=0, le=100)
    overdue_orders: Optional[int] = Field(None, ge=0)


class DashboardConfigUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    refresh_interval: Optional[int] = Field(None, ge=1000, description="Milliseconds")
    show_efficiency: Optional[bool] = None
    show_quality: Optional[bool] = None
    show_costs: Optional[bool] = None
    show_alerts: Optional[bool] = None
    alert_thresholds: Optional[AlertThresholdsUpdate] = None


# -----------------------------
# Dashboard
# -----------------------------

class DashboardCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dashboard_config: Optional[DashboardConfigSchema] = None
    performance_metrics: Optional[PerformanceMetricsUpdate] = None


class DashboardResponse(BaseModel):
    id: Optional[str] = None
    company_id: str
    real_time_status: List[MachineStatusSchema]
    daily_summary: List[DailySummarySchema]
    printing_status: List[PrintingMachineStatusSchema]
    alerts: List[Alert]
    performance_metrics: PerformanceMetricsSchema
    dashboard_config: DashboardConfigSchema
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Validator to convert MongoDB ObjectId to string automatically
    @field_validator('id', mode='before')
    @classmethod
    def convert_objectid_to_str(cls, v):
        if isinstance(v, ObjectId):
            return str(v)
        return v
