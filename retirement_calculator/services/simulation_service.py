import logging
from typing import List, Optional

import numpy as np

from retirement_calculator.core.concurrency import CancellationToken, check_cancelled
from retirement_calculator.core.exceptions import InvalidDurationError
from retirement_calculator.models import AggregateStatistics, SimulationInput, SimulationOutcome
from retirement_calculator.services.historical_data_service import HistoricalSeries

logger = logging.getLogger(__name__)


class SimulationService:
    """
    Replays a portfolio against the historical series.

    Every path follows the same yearly order: withdraw at the start of the
    year, fail if the balance is no longer positive, then apply the blended
    return, then inflate next year's withdrawal. Success-rate figures depend
    on that ordering.
    """

    @staticmethod
    def retirement_duration(retirement_age: int, life_expectancy: int) -> int:
        duration = life_expectancy - retirement_age
        if duration <= 0:
            raise InvalidDurationError(duration)
        return duration

    @staticmethod
    def simulate_one_path(
        series: HistoricalSeries,
        initial_balance: float,
        withdrawal_rate: float,
        start_year: int,
        duration_years: int,
        stock_allocation: float,
    ) -> SimulationOutcome:
        balance = float(initial_balance)
        annual_withdrawal = balance * withdrawal_rate
        bond_allocation = 1.0 - stock_allocation
        returns: List[float] = []

        for year in range(duration_years):
            market = series.get_year(start_year + year)
            if market is None:
                # Ran out of historical coverage
                return SimulationOutcome(success=False, finalBalance=0.0, realizedAnnualReturns=returns)

            balance -= annual_withdrawal
            if balance <= 0:
                return SimulationOutcome(success=False, finalBalance=0.0, realizedAnnualReturns=returns)

            blended_return = stock_allocation * market.equityReturn + bond_allocation * market.bondReturn
            returns.append(blended_return)
            balance *= (1 + blended_return)

            annual_withdrawal *= (1 + market.inflation)

        return SimulationOutcome(success=balance > 0, finalBalance=balance, realizedAnnualReturns=returns)

    @staticmethod
    def simulate(series: HistoricalSeries, sim: SimulationInput) -> SimulationOutcome:
        return SimulationService.simulate_one_path(
            series,
            sim.initialBalance,
            sim.withdrawalRate,
            sim.startYear,
            sim.durationYears,
            sim.stockAllocation,
        )

    @staticmethod
    def _start_years(series: HistoricalSeries, duration_years: int) -> range:
        if duration_years <= 0:
            raise InvalidDurationError(duration_years)
        min_year, max_year = series.year_range()
        return range(min_year, max_year - duration_years + 1)

    @staticmethod
    def success_rate(
        series: HistoricalSeries,
        initial_balance: float,
        withdrawal_rate: float,
        duration_years: int,
        stock_allocation: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> float:
        """Percentage (0-100) of rolling windows that never run out of money."""
        successful = 0
        total = 0
        for start_year in SimulationService._start_years(series, duration_years):
            check_cancelled(cancel_token)
            outcome = SimulationService.simulate_one_path(
                series, initial_balance, withdrawal_rate, start_year, duration_years, stock_allocation
            )
            if outcome.success:
                successful += 1
            total += 1

        return successful / total * 100 if total > 0 else 0.0

    @staticmethod
    def aggregate_over_all_windows(
        series: HistoricalSeries,
        initial_balance: float,
        withdrawal_rate: float,
        duration_years: int,
        stock_allocation: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AggregateStatistics:
        """
        Runs one path per historical start year and summarizes them.

        Final-value figures come from successful paths only. Volatility is
        the population standard deviation of each path's average blended
        return, over every path, expressed in percent.
        """
        final_values: List[float] = []
        average_returns: List[float] = []
        failure_periods: List[str] = []
        successful = 0
        total = 0

        for start_year in SimulationService._start_years(series, duration_years):
            check_cancelled(cancel_token)
            outcome = SimulationService.simulate_one_path(
                series, initial_balance, withdrawal_rate, start_year, duration_years, stock_allocation
            )
            if outcome.success:
                successful += 1
                final_values.append(outcome.finalBalance)
            else:
                end_year = start_year + duration_years - 1
                failure_periods.append(f"{start_year}-{end_year}")

            average_returns.append(outcome.averageReturn)
            total += 1

        if total == 0:
            logger.info(f"No {duration_years}-year windows fit the historical series; reporting 0% success")
            return AggregateStatistics()

        stats = AggregateStatistics(
            successRate=successful / total * 100,
            volatility=float(np.std(average_returns)) * 100,
            successfulCount=successful,
            totalCount=total,
            failurePeriods=failure_periods,
        )
        if final_values:
            values = np.array(final_values)
            stats.medianFinalValue = float(np.median(values))
            stats.bestCaseFinalValue = float(values.max())
            stats.worstCaseFinalValue = float(values.min())
        return stats
