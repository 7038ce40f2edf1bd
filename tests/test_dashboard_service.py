from datetime import date, datetime, timedelta

import pytest
from pydantic import ValidationError

from textile_dashboard.core.exceptions import (
    AlreadyExistsError,
    DashboardValidationError,
    NotFoundError,
)
from textile_dashboard.core.models.production_dashboard import DashboardConfig
from textile_dashboard.core.schemas.production_dashboard import (
    AlertCreate,
    AlertThresholdsUpdate,
    DailySummaryCreate,
    DashboardConfigUpdate,
    DashboardCreate,
    MachineStatusUpdate,
    PerformanceMetricsUpdate,
    PrintingStatusUpdate,
)
from textile_dashboard.modules.production_dashboard import dashboard_service
from textile_dashboard.modules.production_dashboard.dashboard_service import ProductionDashboardService
from textile_dashboard.shared.timezone import UTC, as_utc, get_utc_now

pytestmark = pytest.mark.usefixtures("db")


def freeze_time(monkeypatch, moment):
    monkeypatch.setattr(dashboard_service, "get_utc_now", lambda: moment)


async def create_acme(**kwargs):
    return await ProductionDashboardService.create("ACME", DashboardCreate(**kwargs), "U1")


def new_summary(**kwargs):
    kwargs.setdefault("firm_name", "Shree Textiles")
    kwargs.setdefault("machine_name", "Jet Washer 1")
    return DailySummaryCreate(**kwargs)


# -------------------------
# Lookup & creation
# -------------------------

async def test_find_by_company_returns_none_without_dashboard():
    assert await ProductionDashboardService.find_by_company("NEW_CO") is None


async def test_find_by_company_is_idempotent():
    await create_acme()
    first = await ProductionDashboardService.find_by_company("ACME")
    second = await ProductionDashboardService.find_by_company("ACME")

    assert first.id == second.id
    assert first.model_dump() == second.model_dump()


async def test_create_sets_defaults_and_tracking():
    dashboard = await create_acme()

    assert dashboard.company_id == "ACME"
    assert dashboard.created_by == "U1"
    assert dashboard.updated_by == "U1"
    assert dashboard.real_time_status == {}
    assert dashboard.daily_summary == []
    assert dashboard.alerts == {}
    assert dashboard.dashboard_config == DashboardConfig()


async def test_create_accepts_initial_config_and_metrics():
    dashboard = await create_acme(
        dashboard_config=DashboardConfig(refresh_interval=60000, show_costs=False),
        performance_metrics=PerformanceMetricsUpdate(overall_efficiency=71.5),
    )

    assert dashboard.dashboard_config.refresh_interval == 60000
    assert dashboard.dashboard_config.show_costs is False
    assert dashboard.performance_metrics.overall_efficiency == 71.5


async def test_duplicate_create_rejected():
    await create_acme()
    with pytest.raises(AlreadyExistsError):
        await create_acme()


async def test_racing_create_rejected_by_unique_index(monkeypatch):
    await create_acme()

    async def no_dashboard(company_id):
        return None

    # Simulate a second writer that passed the existence check before the first insert landed
    monkeypatch.setattr(ProductionDashboardService, "find_by_company", staticmethod(no_dashboard))

    with pytest.raises(AlreadyExistsError):
        await create_acme()


async def test_get_dashboard_or_404_raises_for_unknown_company():
    with pytest.raises(NotFoundError) as exc:
        await ProductionDashboardService.get_dashboard_or_404("NEW_CO")
    assert exc.value.status_code == 404


# -------------------------
# Machine status
# -------------------------

async def test_update_machine_status_adds_new_machine():
    await create_acme()
    dashboard = await ProductionDashboardService.update_machine_status(
        "ACME", "M1", MachineStatusUpdate(current_status="running", efficiency=80), "U2"
    )

    machine = dashboard.real_time_status["M1"]
    assert machine.machine_id == "M1"
    assert machine.machine_name == "M1"
    assert machine.current_status == "running"
    assert machine.efficiency == 80
    assert dashboard.updated_by == "U2"


async def test_update_machine_status_merges_by_machine_id():
    await create_acme()
    await ProductionDashboardService.update_machine_status(
        "ACME", "M1",
        MachineStatusUpdate(machine_name="Jet Washer 1", current_status="running", efficiency=80),
    )
    dashboard = await ProductionDashboardService.update_machine_status(
        "ACME", "M1", MachineStatusUpdate(efficiency=65)
    )

    assert list(dashboard.real_time_status) == ["M1"]
    machine = dashboard.real_time_status["M1"]
    assert machine.efficiency == 65
    assert machine.current_status == "running"
    assert machine.machine_name == "Jet Washer 1"


async def test_update_machine_status_null_clears_optional_fields():
    await create_acme()
    await ProductionDashboardService.update_machine_status(
        "ACME", "M1",
        MachineStatusUpdate(
            machine_name="Jet Washer 1",
            current_status="running",
            current_order_id="PO-1",
            operator_id="OP-7",
            completed_quantity=250,
        ),
    )

    dashboard = await ProductionDashboardService.update_machine_status(
        "ACME", "M1",
        MachineStatusUpdate(
            current_status="idle",
            current_order_id=None,
            operator_id=None,
            machine_name=None,
            completed_quantity=None,
        ),
    )

    machine = dashboard.real_time_status["M1"]
    assert machine.current_status == "idle"
    assert machine.current_order_id is None
    assert machine.operator_id is None
    # Required and defaulted fields ignore null
    assert machine.machine_name == "Jet Washer 1"
    assert machine.completed_quantity == 250


async def test_update_printing_status_null_clears_optional_fields():
    await create_acme()
    await ProductionDashboardService.update_printing_status(
        "ACME", "P1", PrintingStatusUpdate(current_fabric="Cotton Poplin", printing_speed=45)
    )

    dashboard = await ProductionDashboardService.update_printing_status(
        "ACME", "P1", PrintingStatusUpdate(current_fabric=None, quality_check_required=None)
    )

    machine = dashboard.printing_status["P1"]
    assert machine.current_fabric is None
    assert machine.printing_speed == 45
    assert machine.quality_check_required is True


async def test_update_machine_status_leaves_other_machines_alone():
    await create_acme()
    await ProductionDashboardService.update_machine_status(
        "ACME", "M1", MachineStatusUpdate(current_status="running")
    )
    await ProductionDashboardService.update_machine_status(
        "ACME", "M2", MachineStatusUpdate(current_status="maintenance")
    )
    dashboard = await ProductionDashboardService.update_machine_status(
        "ACME", "M1", MachineStatusUpdate(current_status="breakdown")
    )

    assert dashboard.real_time_status["M1"].current_status == "breakdown"
    assert dashboard.real_time_status["M2"].current_status == "maintenance"


async def test_update_machine_status_stamps_last_updated(monkeypatch):
    await create_acme()
    moment = datetime(2024, 1, 15, 8, 30, tzinfo=UTC)
    freeze_time(monkeypatch, moment)

    dashboard = await ProductionDashboardService.update_machine_status(
        "ACME", "M1", MachineStatusUpdate(current_status="idle")
    )

    assert as_utc(dashboard.real_time_status["M1"].last_updated) == moment
    assert as_utc(dashboard.updated_at) == moment


async def test_update_machine_status_requires_dashboard():
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.update_machine_status(
            "NEW_CO", "M1", MachineStatusUpdate(current_status="running")
        )


async def test_update_machine_status_rejects_unsafe_machine_id():
    await create_acme()
    with pytest.raises(DashboardValidationError):
        await ProductionDashboardService.update_machine_status(
            "ACME", "M.1", MachineStatusUpdate(current_status="running")
        )


async def test_get_machine_status_combines_both_collections():
    await create_acme()
    await ProductionDashboardService.update_machine_status(
        "ACME", "P1", MachineStatusUpdate(machine_type="printing", current_status="running")
    )
    await ProductionDashboardService.update_printing_status(
        "ACME", "P1", PrintingStatusUpdate(current_status="printing", printing_speed=40)
    )

    status = await ProductionDashboardService.get_machine_status("ACME", "P1")

    assert status.real_time.current_status == "running"
    assert status.printing.current_status == "printing"
    assert status.printing.printing_speed == 40


async def test_get_machine_status_unknown_machine():
    await create_acme()
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.get_machine_status("ACME", "M404")


# -------------------------
# Printing status
# -------------------------

async def test_printing_status_upsert_and_list():
    await create_acme()
    await ProductionDashboardService.update_printing_status(
        "ACME", "P1",
        PrintingStatusUpdate(machine_name="Rotary Printer 1", machine_type="machine_printing"),
    )
    await ProductionDashboardService.update_printing_status(
        "ACME", "P1", PrintingStatusUpdate(current_status="printing", current_fabric="Cotton Poplin")
    )

    machines = await ProductionDashboardService.get_printing_status("ACME")

    assert len(machines) == 1
    assert machines[0].machine_name == "Rotary Printer 1"
    assert machines[0].current_status == "printing"
    assert machines[0].current_fabric == "Cotton Poplin"
    assert machines[0].quality_check_required is True


async def test_get_printing_status_requires_dashboard():
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.get_printing_status("NEW_CO")


# -------------------------
# Daily summary
# -------------------------

async def test_daily_summary_for_company_without_dashboard_is_empty():
    assert await ProductionDashboardService.get_daily_summary("NEW_CO", get_utc_now()) == []


async def test_add_daily_summary_requires_dashboard():
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.add_daily_summary("NEW_CO", new_summary())


@pytest.mark.parametrize("missing", ["firm_name", "machine_name"])
async def test_daily_summary_requires_firm_and_machine_names(missing):
    fields = {"firm_name": "Shree Textiles", "machine_name": "Jet Washer 1"}
    del fields[missing]

    with pytest.raises(ValidationError) as exc:
        DailySummaryCreate(**fields)
    assert exc.value.errors()[0]["loc"] == (missing,)

    with pytest.raises(ValidationError):
        DailySummaryCreate(**fields, **{missing: ""})


async def test_daily_summary_filtered_by_utc_day(monkeypatch):
    await create_acme()

    freeze_time(monkeypatch, datetime(2024, 1, 15, 8, 0, tzinfo=UTC))
    await ProductionDashboardService.add_daily_summary("ACME", new_summary(machine_id="M1"))

    freeze_time(monkeypatch, datetime(2024, 1, 16, 8, 0, tzinfo=UTC))
    await ProductionDashboardService.add_daily_summary("ACME", new_summary(machine_id="M2"))

    on_15th = await ProductionDashboardService.get_daily_summary("ACME", date(2024, 1, 15))
    on_16th = await ProductionDashboardService.get_daily_summary("ACME", date(2024, 1, 16))
    on_17th = await ProductionDashboardService.get_daily_summary("ACME", date(2024, 1, 17))

    assert [s.machine_id for s in on_15th] == ["M1"]
    assert [s.machine_id for s in on_16th] == ["M2"]
    assert on_17th == []


async def test_daily_summary_day_edges_are_inclusive(monkeypatch):
    await create_acme()

    freeze_time(monkeypatch, datetime(2024, 1, 15, 0, 0, 0, tzinfo=UTC))
    await ProductionDashboardService.add_daily_summary("ACME", new_summary(shift="night"))
    freeze_time(monkeypatch, datetime(2024, 1, 15, 23, 59, 59, tzinfo=UTC))
    await ProductionDashboardService.add_daily_summary("ACME", new_summary(shift="afternoon"))

    summaries = await ProductionDashboardService.get_daily_summary("ACME", date(2024, 1, 15))

    assert [s.shift for s in summaries] == ["night", "afternoon"]


async def test_daily_summary_is_append_only(monkeypatch):
    await create_acme()
    freeze_time(monkeypatch, datetime(2024, 1, 15, 8, 0, tzinfo=UTC))

    first = await ProductionDashboardService.add_daily_summary(
        "ACME", new_summary(machine_id="M1", shift="morning", completed_quantity=100)
    )
    second = await ProductionDashboardService.add_daily_summary(
        "ACME", new_summary(machine_id="M1", shift="morning", completed_quantity=120)
    )

    assert len(first.daily_summary) == 1
    assert len(second.daily_summary) == 2
    assert second.daily_summary[0].model_dump() == first.daily_summary[0].model_dump()
    assert second.daily_summary[1].completed_quantity == 120


async def test_add_daily_summary_fills_derived_figures(monkeypatch):
    await create_acme()
    moment = datetime(2024, 1, 15, 18, 0, tzinfo=UTC)
    freeze_time(monkeypatch, moment)

    dashboard = await ProductionDashboardService.add_daily_summary(
        "ACME",
        new_summary(
            material_cost=600, labor_cost=250, machine_cost=100, overhead_cost=50,
            completed_quantity=400,
            total_run_time=360, total_idle_time=60, total_breakdown_time=30, total_setup_time=30,
        ),
    )

    summary = dashboard.daily_summary[0]
    assert as_utc(summary.date) == moment
    assert summary.total_cost == 1000
    assert summary.cost_per_unit == 2.5
    assert summary.efficiency == 75.0


# -------------------------
# Alerts
# -------------------------

async def test_add_alert_starts_open_with_generated_id():
    await create_acme()
    dashboard = await ProductionDashboardService.add_alert(
        "ACME", AlertCreate(type="machine_breakdown", severity="critical", message="M3 down")
    )

    (alert,) = dashboard.alerts.values()
    assert alert.alert_id
    assert alert.state == "open"
    assert alert.is_acknowledged is False
    assert alert.is_resolved is False


async def test_add_alert_requires_dashboard():
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.add_alert(
            "NEW_CO", AlertCreate(type="quality_issue", message="Shade variation")
        )


async def test_alerts_listed_newest_first(monkeypatch):
    await create_acme()
    start = datetime(2024, 1, 15, 8, 0, tzinfo=UTC)
    for offset, message in enumerate(["first", "second", "third"]):
        freeze_time(monkeypatch, start + timedelta(minutes=offset))
        await ProductionDashboardService.add_alert(
            "ACME", AlertCreate(type="low_efficiency", message=message)
        )

    alerts = await ProductionDashboardService.get_alerts("ACME")

    assert [a.message for a in alerts] == ["third", "second", "first"]


async def test_active_alerts_exclude_resolved():
    await create_acme()
    await ProductionDashboardService.add_alert("ACME", AlertCreate(type="low_efficiency", message="a"))
    dashboard = await ProductionDashboardService.add_alert(
        "ACME", AlertCreate(type="high_rejection", message="b")
    )
    rejection = next(a for a in dashboard.alerts.values() if a.message == "b")
    await ProductionDashboardService.resolve_alert("ACME", rejection.alert_id, "U2", "rework done")

    active = await ProductionDashboardService.get_active_alerts("ACME")
    everything = await ProductionDashboardService.get_alerts("ACME")
    unresolved = await ProductionDashboardService.get_alerts("ACME", include_resolved=False)

    assert [a.message for a in active] == ["a"]
    assert [a.message for a in unresolved] == ["a"]
    assert len(everything) == 2


async def test_active_alerts_without_dashboard_is_empty():
    assert await ProductionDashboardService.get_active_alerts("NEW_CO") == []


async def test_acknowledge_alert_records_user():
    await create_acme()
    dashboard = await ProductionDashboardService.add_alert(
        "ACME", AlertCreate(type="overdue_order", message="Order 42 late", order_number="42")
    )
    alert_id = next(iter(dashboard.alerts))

    dashboard = await ProductionDashboardService.acknowledge_alert("ACME", alert_id, "U1")

    alert = dashboard.alerts[alert_id]
    assert alert.state == "acknowledged"
    assert alert.acknowledged_by == "U1"
    assert alert.acknowledged_at is not None


async def test_resolve_without_acknowledge():
    await create_acme()
    dashboard = await ProductionDashboardService.add_alert(
        "ACME", AlertCreate(type="quality_issue", message="Shade variation")
    )
    alert_id = next(iter(dashboard.alerts))

    dashboard = await ProductionDashboardService.resolve_alert("ACME", alert_id, "U2")

    alert = dashboard.alerts[alert_id]
    assert alert.state == "resolved"
    assert alert.is_acknowledged is False
    assert alert.resolved_by == "U2"
    assert alert.resolution_notes is None


async def test_resolved_alert_is_terminal():
    await create_acme()
    dashboard = await ProductionDashboardService.add_alert(
        "ACME", AlertCreate(type="low_efficiency", message="M1 below target")
    )
    alert_id = next(iter(dashboard.alerts))
    resolved = await ProductionDashboardService.resolve_alert("ACME", alert_id, "U2", "fixed")
    before = resolved.alerts[alert_id].model_dump()

    await ProductionDashboardService.acknowledge_alert("ACME", alert_id, "U3")
    dashboard = await ProductionDashboardService.resolve_alert("ACME", alert_id, "U3", "again")

    after = dashboard.alerts[alert_id]
    assert after.model_dump() == before
    assert after.is_resolved is True
    assert after.resolved_by == "U2"
    assert after.resolution_notes == "fixed"


async def test_acknowledge_twice_keeps_first_acknowledgement():
    await create_acme()
    dashboard = await ProductionDashboardService.add_alert(
        "ACME", AlertCreate(type="low_efficiency", message="M1 below target")
    )
    alert_id = next(iter(dashboard.alerts))

    await ProductionDashboardService.acknowledge_alert("ACME", alert_id, "U1")
    dashboard = await ProductionDashboardService.acknowledge_alert("ACME", alert_id, "U2")

    assert dashboard.alerts[alert_id].acknowledged_by == "U1"


async def test_unknown_alert_id_raises_for_acknowledge_and_resolve():
    await create_acme()
    for message in ("a", "b"):
        await ProductionDashboardService.add_alert(
            "ACME", AlertCreate(type="low_efficiency", message=message)
        )
    before = (await ProductionDashboardService.find_by_company("ACME")).alerts

    with pytest.raises(NotFoundError):
        await ProductionDashboardService.acknowledge_alert("ACME", "999", "U1")
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.resolve_alert("ACME", "999", "U1", "n/a")

    after = (await ProductionDashboardService.find_by_company("ACME")).alerts
    assert {k: v.model_dump() for k, v in after.items()} == {k: v.model_dump() for k, v in before.items()}


async def test_alert_operations_require_dashboard():
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.acknowledge_alert("NEW_CO", "abc", "U1")
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.get_alerts("NEW_CO")


async def test_full_lifecycle():
    await ProductionDashboardService.create("ACME", None, "U1")
    await ProductionDashboardService.update_machine_status(
        "ACME", "M1", MachineStatusUpdate(current_status="running", efficiency=80), "U1"
    )
    dashboard = await ProductionDashboardService.add_alert(
        "ACME",
        AlertCreate(type="low_efficiency", severity="medium", message="M1 below target"),
        "U1",
    )
    alert_id = next(iter(dashboard.alerts))

    await ProductionDashboardService.acknowledge_alert("ACME", alert_id, "U1")
    dashboard = await ProductionDashboardService.resolve_alert(
        "ACME", alert_id, "U2", "fixed calibration"
    )

    assert list(dashboard.real_time_status) == ["M1"]
    assert dashboard.real_time_status["M1"].efficiency == 80

    alert = dashboard.alerts[alert_id]
    assert alert.is_acknowledged is True
    assert alert.is_resolved is True
    assert alert.acknowledged_by == "U1"
    assert alert.resolved_by == "U2"
    assert alert.resolution_notes == "fixed calibration"
    assert await ProductionDashboardService.get_active_alerts("ACME") == []


# -------------------------
# Metrics & config
# -------------------------

async def test_update_performance_metrics_shallow_merge(monkeypatch):
    await create_acme(performance_metrics=PerformanceMetricsUpdate(total_orders=10, average_quality=92))
    moment = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
    freeze_time(monkeypatch, moment)

    await ProductionDashboardService.update_performance_metrics(
        "ACME", PerformanceMetricsUpdate(overall_efficiency=78.5, total_orders=12)
    )
    metrics = await ProductionDashboardService.get_performance_metrics("ACME")

    assert metrics.overall_efficiency == 78.5
    assert metrics.total_orders == 12
    assert metrics.average_quality == 92
    assert as_utc(metrics.last_updated) == moment


async def test_update_dashboard_config_merges_thresholds():
    await create_acme()

    await ProductionDashboardService.update_dashboard_config(
        "ACME",
        DashboardConfigUpdate(
            refresh_interval=15000,
            alert_thresholds=AlertThresholdsUpdate(low_efficiency=65),
        ),
    )
    dashboard_config = await ProductionDashboardService.get_dashboard_config("ACME")

    assert dashboard_config.refresh_interval == 15000
    assert dashboard_config.show_alerts is True
    assert dashboard_config.alert_thresholds.low_efficiency == 65
    assert dashboard_config.alert_thresholds.high_rejection == 5
    assert dashboard_config.alert_thresholds.overdue_orders == 3


async def test_metrics_and_config_require_dashboard():
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.get_performance_metrics("NEW_CO")
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.update_performance_metrics(
            "NEW_CO", PerformanceMetricsUpdate(total_cost=10)
        )
    with pytest.raises(NotFoundError):
        await ProductionDashboardService.update_dashboard_config(
            "NEW_CO", DashboardConfigUpdate(show_costs=False)
        )


async def test_to_response_lists_keyed_collections():
    await create_acme()
    await ProductionDashboardService.update_machine_status(
        "ACME", "M1", MachineStatusUpdate(current_status="running")
    )
    dashboard = await ProductionDashboardService.add_alert(
        "ACME", AlertCreate(type="low_efficiency", message="M1 below target")
    )

    response = ProductionDashboardService.to_response(dashboard)

    assert isinstance(response.id, str)
    assert [m.machine_id for m in response.real_time_status] == ["M1"]
    assert response.alerts[0].state == "open"
    assert response.printing_status == []
