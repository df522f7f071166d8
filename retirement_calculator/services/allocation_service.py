import logging
from typing import List, Optional

from retirement_calculator.core.concurrency import CancellationToken, run_sweeps
from retirement_calculator.core.config import Settings, settings as default_settings
from retirement_calculator.core.exceptions import ComputationError, RetirementCalculatorError
from retirement_calculator.models import AllocationAnalysisResult, AllocationStrategy, UserInput
from retirement_calculator.services.historical_data_service import HistoricalSeries
from retirement_calculator.services.simulation_service import SimulationService
from retirement_calculator.services.solver_service import SolverService
from retirement_calculator.services.withdrawal_service import WithdrawalService

logger = logging.getLogger(__name__)


class AllocationAnalysisService:
    """
    Tries a range of stock/bond mixes against the same user and ranks them.

    Each candidate is an independent sweep (rate search, then statistics at
    the solved rate), so candidates run concurrently over the shared,
    read-only series.
    """

    # Stock share of each candidate
    ALLOCATIONS_TO_TEST = [0.30, 0.40, 0.50, 0.60, 0.70, 0.80, 0.90, 1.00]

    # Score weights
    SUCCESS_WEIGHT = 0.60
    FINAL_VALUE_WEIGHT = 10
    FINAL_VALUE_CAP = 25
    VOLATILITY_BASE = 15
    VOLATILITY_PENALTY = 0.5

    # Aggressive pick must keep at least this success rate when any candidate does
    AGGRESSIVE_MIN_SUCCESS_RATE = 85

    CONSERVATIVE_DESCRIPTION = (
        "Prioritizes portfolio survival with highest success rate and lowest volatility. "
        "Best for those who prioritize security over growth."
    )
    BALANCED_DESCRIPTION = (
        "Optimal risk/reward ratio based on historical performance. "
        "Balances growth potential with portfolio stability."
    )
    AGGRESSIVE_DESCRIPTION = (
        "Maximizes growth potential while maintaining acceptable success rate. "
        "Best for those comfortable with higher volatility for potentially greater returns."
    )

    def __init__(self, series: HistoricalSeries, config: Settings = default_settings):
        self.series = series
        self.config = config

    async def analyze_allocations(
        self, user_input: UserInput, cancel_token: Optional[CancellationToken] = None
    ) -> AllocationAnalysisResult:
        cancel_token = cancel_token or CancellationToken()
        total_balance = float(user_input.totalBalance)
        target_pct = float(user_input.successRateThreshold * 100)
        duration = SimulationService.retirement_duration(user_input.retirementAge, self.config.LIFE_EXPECTANCY)

        logger.info(
            f"Analyzing allocations for retirement duration {duration} years, balance ${total_balance:,.2f}, "
            f"target success rate {target_pct}%"
        )

        sweeps = [
            (
                f"{stock:.0%} stocks",
                lambda stock=stock: self.analyze_allocation(user_input, stock, duration, target_pct, cancel_token),
            )
            for stock in self.ALLOCATIONS_TO_TEST
        ]
        results = await run_sweeps(
            sweeps, cancel_token, self.config.MAX_CONCURRENT_SWEEPS, self.config.SWEEP_TIMEOUT_SECONDS
        )

        ranked = sorted((r for r in results if r is not None), key=lambda s: s.score, reverse=True)
        logger.info(f"Analyzed {len(self.ALLOCATIONS_TO_TEST)} allocations, found {len(ranked)} valid results")

        analysis = AllocationAnalysisResult(
            rankedStrategies=ranked,
            retirementDuration=duration,
            targetSuccessRate=target_pct,
            totalPortfolioBalance=total_balance,
            allocationsAnalyzed=len(self.ALLOCATIONS_TO_TEST),
            methodology=self.methodology(),
        )

        if not ranked:
            analysis.hasResults = False
            analysis.message = (
                "No allocation produced a successful historical scenario. Please adjust your inputs."
            )
            return analysis

        analysis.conservative = self.select_conservative(ranked)
        analysis.balanced = self.select_balanced(ranked)
        analysis.aggressive = self.select_aggressive(ranked)
        return analysis

    def analyze_allocation(
        self,
        user_input: UserInput,
        stock_allocation: float,
        duration_years: int,
        target_pct: float,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Optional[AllocationStrategy]:
        """
        One candidate sweep. Returns None when the mix never survives a
        historical window; any unexpected failure surfaces as ComputationError.
        """
        total_balance = float(user_input.totalBalance)
        logger.debug(f"Analyzing allocation: {stock_allocation:.0%} stocks / {1 - stock_allocation:.0%} bonds")

        try:
            rate = SolverService.solve_withdrawal_rate(
                self.series, total_balance, duration_years, target_pct, stock_allocation, cancel_token
            )
            stats = SimulationService.aggregate_over_all_windows(
                self.series, total_balance, rate, duration_years, stock_allocation, cancel_token
            )
            if stats.successfulCount == 0:
                logger.debug(f"Allocation {stock_allocation:.0%} has no successful scenarios; dropped")
                return None

            plan = WithdrawalService.build_withdrawal_plan(
                total_balance * rate,
                user_input.taxableAccountBalance,
                user_input.retirementAccountBalance,
            )
            score = self.calculate_score(stats.successRate, stats.medianFinalValue, stats.volatility, total_balance)
        except RetirementCalculatorError:
            raise
        except Exception as e:
            logger.error(f"Allocation {stock_allocation:.0%} stocks failed: {e}")
            raise ComputationError(f"Allocation {stock_allocation:.0%} stocks failed: {e}") from e

        return AllocationStrategy(
            stockPct=round(stock_allocation * 100, 2),
            bondPct=round((1 - stock_allocation) * 100, 2),
            successRate=stats.successRate,
            medianFinalValue=stats.medianFinalValue,
            bestCaseFinalValue=stats.bestCaseFinalValue,
            worstCaseFinalValue=stats.worstCaseFinalValue,
            volatility=stats.volatility,
            successfulCount=stats.successfulCount,
            totalCount=stats.totalCount,
            failurePeriods=stats.failurePeriods,
            recommendedWithdrawalRate=rate * 100,
            expectedAnnualWithdrawal=float(plan.grossAnnualWithdrawal),
            expectedNetIncome=float(plan.netAnnualIncome),
            score=score,
        )

    @staticmethod
    def calculate_score(success_rate: float, median_final_value: float, volatility: float, initial_balance: float) -> float:
        cls = AllocationAnalysisService
        success_score = success_rate * cls.SUCCESS_WEIGHT
        final_value_ratio = median_final_value / initial_balance if initial_balance > 0 else 0.0
        final_value_score = min(final_value_ratio * cls.FINAL_VALUE_WEIGHT, cls.FINAL_VALUE_CAP)
        volatility_score = max(0.0, cls.VOLATILITY_BASE - volatility * cls.VOLATILITY_PENALTY)
        return success_score + final_value_score + volatility_score

    @staticmethod
    def select_conservative(strategies: List[AllocationStrategy]) -> AllocationStrategy:
        best = min(strategies, key=lambda s: (-s.successRate, s.volatility))
        return best.model_copy(
            update={"name": "Conservative", "description": AllocationAnalysisService.CONSERVATIVE_DESCRIPTION}
        )

    @staticmethod
    def select_balanced(strategies: List[AllocationStrategy]) -> AllocationStrategy:
        best = max(strategies, key=lambda s: s.score)
        return best.model_copy(
            update={"name": "Balanced", "description": AllocationAnalysisService.BALANCED_DESCRIPTION}
        )

    @staticmethod
    def select_aggressive(strategies: List[AllocationStrategy]) -> AllocationStrategy:
        qualified = [s for s in strategies if s.successRate >= AllocationAnalysisService.AGGRESSIVE_MIN_SUCCESS_RATE]
        if qualified:
            best = max(qualified, key=lambda s: (s.medianFinalValue, s.stockPct))
        else:
            best = max(strategies, key=lambda s: s.medianFinalValue)
        return best.model_copy(
            update={"name": "Aggressive", "description": AllocationAnalysisService.AGGRESSIVE_DESCRIPTION}
        )

    def methodology(self) -> str:
        min_year, max_year = self.series.year_range()
        return (
            f"Historical rolling period analysis using data from {min_year}-{max_year}. "
            "Each allocation is tested against all historical retirement periods of the specified duration. "
            "Success is defined as maintaining a positive portfolio balance throughout retirement."
        )
