import logging
from decimal import Decimal
from typing import Optional

from retirement_calculator.core.concurrency import CancellationToken, check_cancelled
from retirement_calculator.services.early_retirement_service import EarlyRetirementService
from retirement_calculator.services.historical_data_service import HistoricalSeries
from retirement_calculator.services.simulation_service import SimulationService
from retirement_calculator.services.tax_service import TaxService, to_decimal

logger = logging.getLogger(__name__)


class SolverService:
    """
    Bisection solvers over the rolling-window simulation.

    Both searches lean on monotonicity: a higher withdrawal rate never raises
    the success rate, and a larger portfolio never lowers after-tax income.
    Failing to converge is not an error; the solvers return their best
    estimate.
    """

    # Withdrawal rate search
    MIN_RATE = 0.01
    MAX_RATE = 0.15
    RATE_TOLERANCE = 0.0001

    # Required portfolio search
    MIN_PORTFOLIO = Decimal("100000")
    MAX_PORTFOLIO = Decimal("50000000")
    PORTFOLIO_TOLERANCE = Decimal("1000")
    MAX_PORTFOLIO_ITERATIONS = 50

    # Below this retirement age the reverse path deducts the amortized early withdrawal penalty
    PENALTY_RETIREMENT_AGE = 59

    @staticmethod
    def solve_withdrawal_rate(
        series: HistoricalSeries,
        total_balance: float,
        duration_years: int,
        target_success_rate_pct: float,
        stock_allocation: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> float:
        """
        Highest withdrawal rate (to within RATE_TOLERANCE) whose success rate meets the target.

        A probe that meets the target becomes the new lower bound, so the
        answer errs toward more income at the margin.
        """
        min_rate = SolverService.MIN_RATE
        max_rate = SolverService.MAX_RATE
        best_rate = min_rate

        while max_rate - min_rate > SolverService.RATE_TOLERANCE:
            check_cancelled(cancel_token)
            mid_rate = (min_rate + max_rate) / 2
            success_rate = SimulationService.success_rate(
                series, float(total_balance), mid_rate, duration_years, stock_allocation, cancel_token
            )

            logger.debug(
                f"Binary search: Testing withdrawal rate {mid_rate * 100:.4f}% - "
                f"Success rate: {success_rate:.2f}% (target: {target_success_rate_pct}%)"
            )

            if success_rate >= target_success_rate_pct:
                best_rate = mid_rate
                min_rate = mid_rate
            else:
                max_rate = mid_rate

        logger.debug(f"Binary search complete: Best rate = {best_rate * 100:.4f}%")
        return best_rate

    @staticmethod
    def after_tax_income(
        series: HistoricalSeries,
        portfolio: Decimal,
        retirement_age: int,
        duration_years: int,
        target_success_rate_pct: float,
        stock_allocation: float,
        cancel_token: Optional[CancellationToken] = None,
        withdrawal_rate: Optional[float] = None,
    ) -> Decimal:
        """
        Spendable income a portfolio supports on the reverse path.

        The whole gross withdrawal is taxed as ordinary income; retirees
        younger than PENALTY_RETIREMENT_AGE also lose the early withdrawal
        penalty, spread evenly over the penalty years. `withdrawal_rate` skips
        the rate search when the caller already solved it.
        """
        rate = withdrawal_rate
        if rate is None:
            rate = SolverService.solve_withdrawal_rate(
                series, float(portfolio), duration_years, target_success_rate_pct, stock_allocation, cancel_token
            )
        gross_withdrawal = portfolio * to_decimal(rate)
        income = gross_withdrawal - TaxService.total_tax(Decimal("0"), gross_withdrawal)

        if retirement_age < SolverService.PENALTY_RETIREMENT_AGE:
            penalty = EarlyRetirementService.total_penalties(retirement_age, duration_years, gross_withdrawal)
            income -= penalty.perYearPenalty

        return income

    @staticmethod
    def solve_required_portfolio(
        series: HistoricalSeries,
        desired_after_tax_income: Decimal,
        retirement_age: int,
        current_age: int,
        target_success_rate_pct: float,
        stock_allocation: float,
        life_expectancy: int,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Decimal:
        """
        Smallest portfolio (to within PORTFOLIO_TOLERANCE) whose after-tax income meets the goal.

        Raises InvalidDurationError when the retirement horizon is not
        positive; otherwise always returns a number.
        """
        duration_years = SimulationService.retirement_duration(retirement_age, life_expectancy)
        desired = to_decimal(desired_after_tax_income)
        tolerance = SolverService.PORTFOLIO_TOLERANCE

        logger.debug(
            f"Solving required portfolio: income={desired}, age {current_age} -> {retirement_age}, "
            f"{duration_years} years, target {target_success_rate_pct}%, {stock_allocation:.0%} stocks"
        )

        min_portfolio = SolverService.MIN_PORTFOLIO
        max_portfolio = SolverService.MAX_PORTFOLIO

        # Withdrawals and growth scale with the balance, so the rate is the same for every probe
        rate = SolverService.solve_withdrawal_rate(
            series, float(min_portfolio), duration_years, target_success_rate_pct, stock_allocation, cancel_token
        )

        for iteration in range(SolverService.MAX_PORTFOLIO_ITERATIONS):
            check_cancelled(cancel_token)
            test_portfolio = (min_portfolio + max_portfolio) / 2

            income = SolverService.after_tax_income(
                series, test_portfolio, retirement_age, duration_years,
                target_success_rate_pct, stock_allocation, cancel_token, withdrawal_rate=rate
            )

            if abs(income - desired) <= tolerance:
                logger.debug(f"Portfolio search converged after {iteration + 1} iterations: {test_portfolio}")
                return test_portfolio

            if income < desired:
                min_portfolio = test_portfolio
            else:
                max_portfolio = test_portfolio

            if max_portfolio - min_portfolio < tolerance:
                break

        # Best estimate
        return (min_portfolio + max_portfolio) / 2
