from typing import Dict, List, Optional, Literal
from datetime import datetime

from beanie import Document
from pydantic import BaseModel, Field, computed_field
from pymongo import IndexModel, ASCENDING, DESCENDING

from textile_dashboard.shared.timezone import get_utc_now


# -----------------------------
# Enums
# -----------------------------

MachineType = Literal["printing", "washing", "fixing", "stitching", "finishing"]

MachineState = Literal["idle", "running", "maintenance", "breakdown", "setup", "cleaning"]

PrintingMachineType = Literal["table_printing", "machine_printing", "digital_printing"]

PrintingState = Literal["idle", "printing", "setup", "maintenance", "breakdown"]

Shift = Literal["morning", "afternoon", "night"]

QualityGrade = Literal["A+", "A", "B+", "B", "C"]

AlertType = Literal[
    "low_efficiency",
    "high_rejection",
    "overdue_order",
    "machine_breakdown",
    "quality_issue",
]

AlertSeverity = Literal["low", "medium", "high", "critical"]

AlertState = Literal["open", "acknowledged", "resolved"]

# Machine ids double as storage keys, so no dots or '$'
MACHINE_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"


# -----------------------------
# Real-time Machine Status
# -----------------------------

class MachineStatus(BaseModel):
    """Live state of one production machine."""

    machine_id: str = Field(..., pattern=MACHINE_ID_PATTERN)
    machine_name: str
    machine_type: Optional[MachineType] = None
    current_status: MachineState = "idle"

    # ---- Current Order ----
    current_order_id: Optional[str] = None
    current_order_number: Optional[str] = None
    current_product: Optional[str] = None
    current_design: Optional[str] = None
    current_color: Optional[str] = None
    current_gsm: Optional[float] = Field(None, ge=0)

    start_time: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None

    # ---- Quantities ----
    current_quantity: float = Field(default=0, ge=0)
    target_quantity: float = Field(default=0, ge=0)
    completed_quantity: float = Field(default=0, ge=0)
    efficiency: Optional[float] = Field(None, ge=0, le=100)  # Percentage

    # ---- Operator ----
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    shift: Optional[Shift] = None

    last_updated: datetime = Field(default_factory=get_utc_now)


class PrintingMachineStatus(BaseModel):
    """Live state of one printing machine (kept apart from real-time status)."""

    machine_id: str = Field(..., pattern=MACHINE_ID_PATTERN)
    machine_name: str
    machine_type: Optional[PrintingMachineType] = None
    current_status: PrintingState = "idle"

    current_order_id: Optional[str] = None
    current_order_number: Optional[str] = None
    current_design: Optional[str] = None
    current_color: Optional[str] = None
    current_fabric: Optional[str] = None
    current_gsm: Optional[float] = Field(None, ge=0)

    start_time: Optional[datetime] = None
    estimated_end_time: Optional[datetime] = None

    current_quantity: float = Field(default=0, ge=0)
    target_quantity: float = Field(default=0, ge=0)
    completed_quantity: float = Field(default=0, ge=0)
    printing_speed: Optional[float] = Field(None, ge=0)  # meters per minute
    quality_check_required: bool = True

    operator_id: Optional[str] = None
    operator_name: Optional[str] = None

    last_updated: datetime = Field(default_factory=get_utc_now)


# -----------------------------
# Daily Production Summary
# -----------------------------

class DailySummary(BaseModel):
    """Per day / machine / shift rollup. Immutable once appended."""

    date: datetime
    firm_id: Optional[str] = None
    firm_name: str = Field(..., min_length=1)
    machine_id: Optional[str] = None
    machine_name: str = Field(..., min_length=1)
    machine_type: Optional[MachineType] = None
    shift: Optional[Shift] = None

    # ---- Production ----
    total_orders: int = Field(default=0, ge=0)
    completed_orders: int = Field(default=0, ge=0)
    pending_orders: int = Field(default=0, ge=0)
    total_quantity: float = Field(default=0, ge=0)
    completed_quantity: float = Field(default=0, ge=0)
    pending_quantity: float = Field(default=0, ge=0)

    # ---- Quality ----
    total_produced: float = Field(default=0, ge=0)
    approved_quantity: float = Field(default=0, ge=0)
    rejected_quantity: float = Field(default=0, ge=0)
    rework_quantity: float = Field(default=0, ge=0)
    quality_grade: Optional[QualityGrade] = None

    # ---- Time (minutes) ----
    total_run_time: float = Field(default=0, ge=0)
    total_idle_time: float = Field(default=0, ge=0)
    total_breakdown_time: float = Field(default=0, ge=0)
    total_setup_time: float = Field(default=0, ge=0)
    efficiency: float = Field(default=0, ge=0, le=100)

    # ---- Cost ----
    material_cost: float = Field(default=0, ge=0)
    labor_cost: float = Field(default=0, ge=0)
    machine_cost: float = Field(default=0, ge=0)
    overhead_cost: float = Field(default=0, ge=0)
    total_cost: float = Field(default=0, ge=0)
    cost_per_unit: float = Field(default=0, ge=0)

    # ---- Issues & Sign-off ----
    issues: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    supervisor_id: Optional[str] = None
    supervisor_name: Optional[str] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None


# -----------------------------
# Alerts
# -----------------------------

class Alert(BaseModel):
    """
    Alert log entry, addressed by `alert_id`.

    Lifecycle: open -> acknowledged -> resolved, or open -> resolved.
    Resolved is terminal.
    """

    alert_id: str
    type: AlertType
    severity: AlertSeverity = "medium"
    message: str = Field(..., min_length=1)

    machine_id: Optional[str] = None
    machine_name: Optional[str] = None
    order_id: Optional[str] = None
    order_number: Optional[str] = None

    created_at: datetime = Field(default_factory=get_utc_now)

    is_acknowledged: bool = False
    acknowledged_by: Optional[str] = None
    acknowledged_at: Optional[datetime] = None

    is_resolved: bool = False
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None

    @computed_field
    @property
    def state(self) -> AlertState:
        if self.is_resolved:
            return "resolved"
        if self.is_acknowledged:
            return "acknowledged"
        return "open"


# -----------------------------
# Metrics & Config
# -----------------------------

class PerformanceMetrics(BaseModel):
    """Latest company-wide snapshot. Last writer wins."""

    overall_efficiency: float = Field(default=0, ge=0, le=100)
    total_production: float = Field(default=0, ge=0)
    total_orders: int = Field(default=0, ge=0)
    completed_orders: int = Field(default=0, ge=0)
    pending_orders: int = Field(default=0, ge=0)
    average_quality: float = Field(default=0, ge=0, le=100)
    total_cost: float = Field(default=0, ge=0)
    last_updated: datetime = Field(default_factory=get_utc_now)


class AlertThresholds(BaseModel):
    low_efficiency: float = Field(default=70, ge=0, le=100)  # Percentage
    high_rejection: float = Field(default=5, ge=0, le=100)  # Percentage
    overdue_orders: int = Field(default=3, ge=0)  # Days


class DashboardConfig(BaseModel):
    """Display settings handed to polling clients. Not evaluated server-side."""

    refresh_interval: int = Field(default=30000, ge=1000)  # milliseconds
    show_efficiency: bool = True
    show_quality: bool = True
    show_costs: bool = True
    show_alerts: bool = True
    alert_thresholds: AlertThresholds = Field(default_factory=AlertThresholds)


# -----------------------------
# Dashboard Document
# -----------------------------

class ProductionDashboard(Document):
    """
    One production dashboard per company.

    Machine and printing status are keyed by machine_id and alerts by
    alert_id so that each entry can be written atomically on its own path.
    """

    company_id: str

    real_time_status: Dict[str, MachineStatus] = Field(default_factory=dict)
    daily_summary: List[DailySummary] = Field(default_factory=list)
    printing_status: Dict[str, PrintingMachineStatus] = Field(default_factory=dict)
    alerts: Dict[str, Alert] = Field(default_factory=dict)

    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)
    dashboard_config: DashboardConfig = Field(default_factory=DashboardConfig)

    # ---- Tracking ----
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = Field(default_factory=get_utc_now)
    updated_at: datetime = Field(default_factory=get_utc_now)

    class Settings:
        name = "production_dashboards"
        indexes = [
            IndexModel([("company_id", ASCENDING)], unique=True),
            IndexModel([("company_id", ASCENDING), ("updated_at", DESCENDING)]),
        ]
