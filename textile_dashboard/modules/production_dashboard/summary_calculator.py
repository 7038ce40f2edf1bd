from datetime import date, datetime
from typing import Iterable, List, Union
import logging

from textile_dashboard.core.models.production_dashboard import DailySummary
from textile_dashboard.core.schemas.production_dashboard import DailySummaryCreate
from textile_dashboard.shared.timezone import is_within_utc_day

logger = logging.getLogger(__name__)


class SummaryCalculator:
    """
    Calculator for daily production summary figures.

    Handles:
    - Cost rollup (material + labor + machine + overhead)
    - Cost per completed unit
    - Time-based efficiency
    - Day filtering of stored summaries
    """

    @staticmethod
    def calculate_total_cost(
        material_cost: float,
        labor_cost: float,
        machine_cost: float,
        overhead_cost: float
    ) -> float:
        return round(material_cost + labor_cost + machine_cost + overhead_cost, 2)

    @staticmethod
    def calculate_cost_per_unit(total_cost: float, completed_quantity: float) -> float:
        """
        Cost per completed unit.

        Examples:
            >>> calculate_cost_per_unit(1000, 400)
            2.5
            >>> calculate_cost_per_unit(1000, 0)
            0.0  # Nothing completed
        """
        if completed_quantity <= 0:
            return 0.0
        return round(total_cost / completed_quantity, 2)

    @staticmethod
    def calculate_efficiency(
        run_minutes: float,
        idle_minutes: float,
        breakdown_minutes: float,
        setup_minutes: float
    ) -> float:
        """
        Share of recorded time spent running, as a percentage.

        Examples:
            >>> calculate_efficiency(360, 60, 30, 30)
            75.0
            >>> calculate_efficiency(0, 0, 0, 0)
            0.0
        """
        recorded = run_minutes + idle_minutes + breakdown_minutes + setup_minutes
        if recorded <= 0:
            return 0.0
        return round(min(run_minutes / recorded * 100, 100.0), 2)

    @staticmethod
    def build_summary(payload: DailySummaryCreate, stamped_at: datetime) -> DailySummary:
        """
        Turn a submitted summary into the stored entry.

        `date` is always `stamped_at`. Derived figures are only filled in when
        the caller left them out.
        """
        data = payload.model_dump()

        if data["total_cost"] is None:
            data["total_cost"] = SummaryCalculator.calculate_total_cost(
                payload.material_cost,
                payload.labor_cost,
                payload.machine_cost,
                payload.overhead_cost,
            )

        if data["cost_per_unit"] is None:
            data["cost_per_unit"] = SummaryCalculator.calculate_cost_per_unit(
                data["total_cost"], payload.completed_quantity
            )

        if data["efficiency"] is None:
            data["efficiency"] = SummaryCalculator.calculate_efficiency(
                payload.total_run_time,
                payload.total_idle_time,
                payload.total_breakdown_time,
                payload.total_setup_time,
            )

        logger.debug(
            f"Built daily summary for machine={payload.machine_id} shift={payload.shift}: "
            f"total_cost={data['total_cost']}, efficiency={data['efficiency']}"
        )

        return DailySummary(date=stamped_at, **data)

    @staticmethod
    def filter_by_day(
        summaries: Iterable[DailySummary],
        day: Union[date, datetime]
    ) -> List[DailySummary]:
        """Summaries whose date falls inside the UTC day of `day` (both ends inclusive)."""
        return [s for s in summaries if is_within_utc_day(s.date, day)]
