from typing import Any, Dict, List, Optional, Type, Union
from datetime import date, datetime
from uuid import uuid4
import logging
import re

from pydantic import BaseModel
from pymongo.errors import DuplicateKeyError, PyMongoError
from pymongo.results import UpdateResult

from textile_dashboard.core.exceptions import (
    AlreadyExistsError,
    DashboardValidationError,
    InternalError,
    NotFoundError,
)
from textile_dashboard.core.models.production_dashboard import (
    MACHINE_ID_PATTERN,
    Alert,
    DailySummary,
    DashboardConfig,
    MachineStatus,
    PerformanceMetrics,
    PrintingMachineStatus,
    ProductionDashboard,
)
from textile_dashboard.core.schemas.production_dashboard import (
    AlertCreate,
    DailySummaryCreate,
    DashboardConfigUpdate,
    DashboardCreate,
    DashboardResponse,
    MachineStatusResponse,
    MachineStatusUpdate,
    PerformanceMetricsUpdate,
    PrintingStatusUpdate,
)
from textile_dashboard.core.monitoring.prometheus_middleware import (
    track_alert_event,
    track_dashboard_operation,
)
from textile_dashboard.modules.production_dashboard.summary_calculator import SummaryCalculator
from textile_dashboard.shared.timezone import as_utc, get_utc_now


logger = logging.getLogger(__name__)

_MACHINE_ID_RE = re.compile(MACHINE_ID_PATTERN)


# -----------------------------
# Production Dashboard Service
# -----------------------------
class ProductionDashboardService:
    """
    Access layer for the per-company production dashboard.

    Reads load the whole document. Writes never save the whole document:
    each one is a single conditional update on the path it changes, so
    concurrent writers on different machines or alerts do not overwrite
    each other.
    """

    # -------------------------
    # Helper Methods
    # -------------------------

    @staticmethod
    def _collection():
        return ProductionDashboard.get_motor_collection()

    @staticmethod
    def _stamp(now: datetime, user_id: Optional[str]) -> Dict[str, Any]:
        stamp: Dict[str, Any] = {"updated_at": now}
        if user_id is not None:
            stamp["updated_by"] = user_id
        return stamp

    @staticmethod
    def _check_machine_id(machine_id: str) -> None:
        if not _MACHINE_ID_RE.match(machine_id or ""):
            raise DashboardValidationError(
                f"Invalid machine id '{machine_id}'",
                error="machine_id may only contain letters, digits, '_' and '-' (max 64)"
            )

    @staticmethod
    def _patch_fields(patch: BaseModel) -> Dict[str, Any]:
        """Fields the caller actually sent; null means 'leave unchanged'."""
        return patch.model_dump(exclude_unset=True, exclude_none=True)

    @staticmethod
    def _machine_patch_fields(
        patch: BaseModel,
        entry_model: Type[Union[MachineStatus, PrintingMachineStatus]]
    ) -> Dict[str, Any]:
        """
        Fields the caller actually sent. An explicit null clears an optional
        field (order, operator, timings); it is ignored for fields the stored
        entry cannot hold as null (name, status, quantities).
        """
        fields = entry_model.model_fields
        return {
            name: value
            for name, value in patch.model_dump(exclude_unset=True).items()
            if value is not None or fields[name].default is None
        }

    @staticmethod
    async def _update(
        company_id: str,
        conditions: Dict[str, Any],
        update: Dict[str, Any],
        operation: str
    ) -> UpdateResult:
        """Run one conditional update against the company's dashboard."""
        query = {"company_id": company_id, **conditions}
        try:
            return await ProductionDashboardService._collection().update_one(query, update)
        except PyMongoError as e:
            logger.error(f"{operation} failed for company {company_id}: {e}")
            track_dashboard_operation(operation, success=False)
            raise InternalError("Failed to update production dashboard", error=str(e))

    @staticmethod
    def _alerts_newest_first(dashboard: ProductionDashboard) -> List[Alert]:
        # Reverse insertion order first so equal timestamps still list the latest append first
        alerts = list(reversed(list(dashboard.alerts.values())))
        return sorted(alerts, key=lambda a: as_utc(a.created_at), reverse=True)

    @staticmethod
    def to_response(dashboard: ProductionDashboard) -> DashboardResponse:
        """List view of the keyed collections for API callers."""
        return DashboardResponse(
            id=dashboard.id,
            company_id=dashboard.company_id,
            real_time_status=list(dashboard.real_time_status.values()),
            daily_summary=dashboard.daily_summary,
            printing_status=list(dashboard.printing_status.values()),
            alerts=ProductionDashboardService._alerts_newest_first(dashboard),
            performance_metrics=dashboard.performance_metrics,
            dashboard_config=dashboard.dashboard_config,
            created_by=dashboard.created_by,
            updated_by=dashboard.updated_by,
            created_at=dashboard.created_at,
            updated_at=dashboard.updated_at,
        )

    # -------------------------
    # Dashboard Lookup & Creation
    # -------------------------

    @staticmethod
    async def find_by_company(company_id: str) -> Optional[ProductionDashboard]:
        """Most recently updated dashboard for the company, or None."""
        return await ProductionDashboard.find(
            ProductionDashboard.company_id == company_id
        ).sort(-ProductionDashboard.updated_at).first_or_none()

    @staticmethod
    async def get_dashboard_or_404(company_id: str) -> ProductionDashboard:
        dashboard = await ProductionDashboardService.find_by_company(company_id)
        if not dashboard:
            logger.warning(f"Production dashboard not found for company {company_id}")
            raise NotFoundError(f"Production dashboard not found for company '{company_id}'")
        return dashboard

    @staticmethod
    async def create(
        company_id: str,
        initial_data: Optional[DashboardCreate],
        creator_id: Optional[str]
    ) -> ProductionDashboard:
        """
        Create the company's dashboard.

        The existence check gives a clean error in the common case; the unique
        index on company_id rejects a concurrent create that slips past it.
        """
        existing = await ProductionDashboardService.find_by_company(company_id)
        if existing:
            logger.warning(f"Production dashboard already exists for company {company_id}")
            raise AlreadyExistsError(f"Production dashboard already exists for company '{company_id}'")

        initial_data = initial_data or DashboardCreate()
        now = get_utc_now()

        metrics = PerformanceMetrics(last_updated=now)
        if initial_data.performance_metrics:
            metrics = PerformanceMetrics(
                **ProductionDashboardService._patch_fields(initial_data.performance_metrics),
                last_updated=now,
            )

        dashboard = ProductionDashboard(
            company_id=company_id,
            performance_metrics=metrics,
            dashboard_config=initial_data.dashboard_config or DashboardConfig(),
            created_by=creator_id,
            updated_by=creator_id,
            created_at=now,
            updated_at=now,
        )

        try:
            await dashboard.insert()
        except DuplicateKeyError:
            logger.warning(f"Concurrent create rejected by unique index for company {company_id}")
            raise AlreadyExistsError(f"Production dashboard already exists for company '{company_id}'")
        except PyMongoError as e:
            logger.error(f"Failed to insert production dashboard for company {company_id}: {e}")
            track_dashboard_operation("create", success=False)
            raise InternalError("Failed to create production dashboard", error=str(e))

        track_dashboard_operation("create", success=True)
        logger.info(f"Production dashboard created for company {company_id} by {creator_id}")
        return dashboard

    # -------------------------
    # Machine Status
    # -------------------------

    @staticmethod
    async def _upsert_machine_entry(
        field: str,
        entry_model: Type[Union[MachineStatus, PrintingMachineStatus]],
        company_id: str,
        machine_id: str,
        patch: BaseModel,
        user_id: Optional[str],
        operation: str
    ) -> ProductionDashboard:
        """
        Merge `patch` into `<field>.<machine_id>`, or add the machine if absent.

        Both branches are conditional updates on the machine's own key. If the
        insert loses a race to another insert of the same machine, the patch
        branch is retried once against the entry that won.
        """
        ProductionDashboardService._check_machine_id(machine_id)
        await ProductionDashboardService.get_dashboard_or_404(company_id)

        changes = ProductionDashboardService._machine_patch_fields(patch, entry_model)
        key = f"{field}.{machine_id}"

        for _ in range(2):
            now = get_utc_now()

            # ===== EXISTING MACHINE: MERGE =====
            merge = {f"{key}.{name}": value for name, value in changes.items()}
            merge[f"{key}.last_updated"] = now
            merge.update(ProductionDashboardService._stamp(now, user_id))

            result = await ProductionDashboardService._update(
                company_id, {key: {"$exists": True}}, {"$set": merge}, operation
            )
            if result.matched_count:
                logger.info(f"{operation}: merged {sorted(changes)} into {machine_id} for company {company_id}")
                break

            # ===== NEW MACHINE: INSERT =====
            fields = dict(changes)
            fields.setdefault("machine_name", machine_id)
            entry = entry_model(machine_id=machine_id, last_updated=now, **fields)

            insert = {key: entry.model_dump()}
            insert.update(ProductionDashboardService._stamp(now, user_id))

            result = await ProductionDashboardService._update(
                company_id, {key: {"$exists": False}}, {"$set": insert}, operation
            )
            if result.matched_count:
                logger.info(f"{operation}: added machine {machine_id} for company {company_id}")
                break
        else:
            raise NotFoundError(f"Production dashboard not found for company '{company_id}'")

        track_dashboard_operation(operation, success=True)
        return await ProductionDashboardService.get_dashboard_or_404(company_id)

    @staticmethod
    async def get_machine_status(company_id: str, machine_id: str) -> MachineStatusResponse:
        """Real-time and printing entries for one machine."""
        dashboard = await ProductionDashboardService.get_dashboard_or_404(company_id)

        real_time = dashboard.real_time_status.get(machine_id)
        printing = dashboard.printing_status.get(machine_id)
        if real_time is None and printing is None:
            logger.warning(f"Machine {machine_id} not on dashboard for company {company_id}")
            raise NotFoundError(f"Machine '{machine_id}' not found on production dashboard")

        return MachineStatusResponse(real_time=real_time, printing=printing)

    @staticmethod
    async def update_machine_status(
        company_id: str,
        machine_id: str,
        patch: MachineStatusUpdate,
        user_id: Optional[str] = None
    ) -> ProductionDashboard:
        return await ProductionDashboardService._upsert_machine_entry(
            "real_time_status", MachineStatus, company_id, machine_id, patch, user_id,
            "update_machine_status"
        )

    # -------------------------
    # Printing Status
    # -------------------------

    @staticmethod
    async def get_printing_status(company_id: str) -> List[PrintingMachineStatus]:
        dashboard = await ProductionDashboardService.get_dashboard_or_404(company_id)
        return list(dashboard.printing_status.values())

    @staticmethod
    async def update_printing_status(
        company_id: str,
        machine_id: str,
        patch: PrintingStatusUpdate,
        user_id: Optional[str] = None
    ) -> ProductionDashboard:
        return await ProductionDashboardService._upsert_machine_entry(
            "printing_status", PrintingMachineStatus, company_id, machine_id, patch, user_id,
            "update_printing_status"
        )

    # -------------------------
    # Daily Summary
    # -------------------------

    @staticmethod
    async def get_daily_summary(
        company_id: str,
        day: Union[date, datetime]
    ) -> List[DailySummary]:
        """Summaries dated within the UTC day of `day`. Never raises for missing data."""
        dashboard = await ProductionDashboardService.find_by_company(company_id)
        if not dashboard:
            return []
        return SummaryCalculator.filter_by_day(dashboard.daily_summary, day)

    @staticmethod
    async def add_daily_summary(
        company_id: str,
        summary: DailySummaryCreate,
        user_id: Optional[str] = None
    ) -> ProductionDashboard:
        """Append a summary dated now. Earlier entries are never touched."""
        now = get_utc_now()
        entry = SummaryCalculator.build_summary(summary, stamped_at=now)

        result = await ProductionDashboardService._update(
            company_id,
            {},
            {
                "$push": {"daily_summary": entry.model_dump()},
                "$set": ProductionDashboardService._stamp(now, user_id),
            },
            "add_daily_summary",
        )
        if not result.matched_count:
            logger.warning(f"Cannot add daily summary: no dashboard for company {company_id}")
            raise NotFoundError(f"Production dashboard not found for company '{company_id}'")

        track_dashboard_operation("add_daily_summary", success=True)
        logger.info(
            f"Daily summary added for company {company_id}: "
            f"machine={entry.machine_id} shift={entry.shift} efficiency={entry.efficiency}"
        )
        return await ProductionDashboardService.get_dashboard_or_404(company_id)

    # -------------------------
    # Alerts
    # -------------------------

    @staticmethod
    async def get_active_alerts(company_id: str) -> List[Alert]:
        """Unresolved alerts, newest first. Empty when the company has no dashboard."""
        dashboard = await ProductionDashboardService.find_by_company(company_id)
        if not dashboard:
            return []
        return [
            a for a in ProductionDashboardService._alerts_newest_first(dashboard)
            if not a.is_resolved
        ]

    @staticmethod
    async def get_alerts(company_id: str, include_resolved: bool = True) -> List[Alert]:
        dashboard = await ProductionDashboardService.get_dashboard_or_404(company_id)
        alerts = ProductionDashboardService._alerts_newest_first(dashboard)
        if include_resolved:
            return alerts
        return [a for a in alerts if not a.is_resolved]

    @staticmethod
    async def add_alert(
        company_id: str,
        alert: AlertCreate,
        user_id: Optional[str] = None
    ) -> ProductionDashboard:
        now = get_utc_now()
        entry = Alert(alert_id=uuid4().hex, created_at=now, **alert.model_dump())
        key = f"alerts.{entry.alert_id}"

        update = {key: entry.model_dump(exclude={"state"})}
        update.update(ProductionDashboardService._stamp(now, user_id))

        result = await ProductionDashboardService._update(
            company_id, {key: {"$exists": False}}, {"$set": update}, "add_alert"
        )
        if not result.matched_count:
            logger.warning(f"Cannot add alert: no dashboard for company {company_id}")
            raise NotFoundError(f"Production dashboard not found for company '{company_id}'")

        track_dashboard_operation("add_alert", success=True)
        track_alert_event("created")
        logger.info(
            f"Alert {entry.alert_id} ({entry.type}/{entry.severity}) added for company {company_id}"
        )
        return await ProductionDashboardService.get_dashboard_or_404(company_id)

    @staticmethod
    async def _get_alert_or_404(company_id: str, alert_id: str) -> Alert:
        dashboard = await ProductionDashboardService.get_dashboard_or_404(company_id)
        alert = dashboard.alerts.get(alert_id)
        if alert is None:
            logger.warning(f"Alert {alert_id} not found for company {company_id}")
            raise NotFoundError(f"Alert '{alert_id}' not found")
        return alert

    @staticmethod
    async def acknowledge_alert(
        company_id: str,
        alert_id: str,
        user_id: str
    ) -> ProductionDashboard:
        """
        Open -> Acknowledged.

        Acknowledging an alert that is already acknowledged or resolved
        changes nothing.
        """
        await ProductionDashboardService._get_alert_or_404(company_id, alert_id)

        now = get_utc_now()
        key = f"alerts.{alert_id}"
        update = {
            f"{key}.is_acknowledged": True,
            f"{key}.acknowledged_by": user_id,
            f"{key}.acknowledged_at": now,
        }
        update.update(ProductionDashboardService._stamp(now, user_id))

        result = await ProductionDashboardService._update(
            company_id,
            {f"{key}.is_acknowledged": False, f"{key}.is_resolved": False},
            {"$set": update},
            "acknowledge_alert",
        )

        if result.modified_count:
            track_alert_event("acknowledged")
            logger.info(f"Alert {alert_id} acknowledged by {user_id} for company {company_id}")
        else:
            logger.info(f"Alert {alert_id} already acknowledged or resolved; nothing to do")

        track_dashboard_operation("acknowledge_alert", success=True)
        return await ProductionDashboardService.get_dashboard_or_404(company_id)

    @staticmethod
    async def resolve_alert(
        company_id: str,
        alert_id: str,
        user_id: str,
        notes: Optional[str] = None
    ) -> ProductionDashboard:
        """
        Open or Acknowledged -> Resolved. Resolved is terminal: resolving
        again keeps the first resolver, time and notes.
        """
        await ProductionDashboardService._get_alert_or_404(company_id, alert_id)

        now = get_utc_now()
        key = f"alerts.{alert_id}"
        update = {
            f"{key}.is_resolved": True,
            f"{key}.resolved_by": user_id,
            f"{key}.resolved_at": now,
            f"{key}.resolution_notes": notes,
        }
        update.update(ProductionDashboardService._stamp(now, user_id))

        result = await ProductionDashboardService._update(
            company_id,
            {f"{key}.is_resolved": False},
            {"$set": update},
            "resolve_alert",
        )

        if result.modified_count:
            track_alert_event("resolved")
            logger.info(f"Alert {alert_id} resolved by {user_id} for company {company_id}")
        else:
            logger.info(f"Alert {alert_id} already resolved; nothing to do")

        track_dashboard_operation("resolve_alert", success=True)
        return await ProductionDashboardService.get_dashboard_or_404(company_id)

    # -------------------------
    # Performance Metrics
    # -------------------------

    @staticmethod
    async def get_performance_metrics(company_id: str) -> PerformanceMetrics:
        dashboard = await ProductionDashboardService.get_dashboard_or_404(company_id)
        return dashboard.performance_metrics

    @staticmethod
    async def update_performance_metrics(
        company_id: str,
        patch: PerformanceMetricsUpdate,
        user_id: Optional[str] = None
    ) -> ProductionDashboard:
        """Shallow merge into the metrics snapshot."""
        now = get_utc_now()
        update = {
            f"performance_metrics.{name}": value
            for name, value in ProductionDashboardService._patch_fields(patch).items()
        }
        update["performance_metrics.last_updated"] = now
        update.update(ProductionDashboardService._stamp(now, user_id))

        result = await ProductionDashboardService._update(
            company_id, {}, {"$set": update}, "update_performance_metrics"
        )
        if not result.matched_count:
            raise NotFoundError(f"Production dashboard not found for company '{company_id}'")

        track_dashboard_operation("update_performance_metrics", success=True)
        logger.info(f"Performance metrics updated for company {company_id}")
        return await ProductionDashboardService.get_dashboard_or_404(company_id)

    # -------------------------
    # Dashboard Config
    # -------------------------

    @staticmethod
    async def get_dashboard_config(company_id: str) -> DashboardConfig:
        dashboard = await ProductionDashboardService.get_dashboard_or_404(company_id)
        return dashboard.dashboard_config

    @staticmethod
    async def update_dashboard_config(
        company_id: str,
        patch: DashboardConfigUpdate,
        user_id: Optional[str] = None
    ) -> ProductionDashboard:
        """Shallow merge into the config; alert thresholds merge key by key."""
        update: Dict[str, Any] = {}
        for name, value in ProductionDashboardService._patch_fields(patch).items():
            if name == "alert_thresholds":
                for threshold, limit in value.items():
                    update[f"dashboard_config.alert_thresholds.{threshold}"] = limit
            else:
                update[f"dashboard_config.{name}"] = value

        now = get_utc_now()
        update.update(ProductionDashboardService._stamp(now, user_id))

        result = await ProductionDashboardService._update(
            company_id, {}, {"$set": update}, "update_dashboard_config"
        )
        if not result.matched_count:
            raise NotFoundError(f"Production dashboard not found for company '{company_id}'")

        track_dashboard_operation("update_dashboard_config", success=True)
        logger.info(f"Dashboard config updated for company {company_id}: {sorted(update)}")
        return await ProductionDashboardService.get_dashboard_or_404(company_id)
