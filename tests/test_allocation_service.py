from decimal import Decimal

import pytest

from retirement_calculator.core.concurrency import CancellationToken
from retirement_calculator.core.config import Settings
from retirement_calculator.core.exceptions import (
    CalculationCancelledError,
    CalculationTimeoutError,
    InvalidDurationError,
)
from retirement_calculator.models import AllocationStrategy, UserInput
from retirement_calculator.services.allocation_service import AllocationAnalysisService
from retirement_calculator.services.solver_service import SolverService


def _user(**overrides):
    values = dict(
        currentAge=55,
        retirementAge=65,
        retirementAccountBalance=Decimal("700000"),
        taxableAccountBalance=Decimal("300000"),
        successRateThreshold=Decimal("0.90"),
    )
    values.update(overrides)
    return UserInput(**values)


def _strategy(stock, success_rate, median, volatility, score):
    return AllocationStrategy(
        stockPct=stock, bondPct=100 - stock, successRate=success_rate, medianFinalValue=median,
        bestCaseFinalValue=median, worstCaseFinalValue=median, volatility=volatility,
        successfulCount=1, totalCount=1, recommendedWithdrawalRate=4.0,
        expectedAnnualWithdrawal=40000, expectedNetIncome=36000, score=score,
    )


class TestAnalyzeAllocations:

    async def test_selects_three_roles(self, random_series, test_settings):
        service = AllocationAnalysisService(random_series, test_settings)
        result = await service.analyze_allocations(_user())

        assert result.hasResults
        assert result.allocationsAnalyzed == 8
        assert result.retirementDuration == 30
        assert result.targetSuccessRate == 90.0
        assert result.totalPortfolioBalance == 1_000_000

        ranked = result.rankedStrategies
        assert ranked
        assert [s.score for s in ranked] == sorted((s.score for s in ranked), reverse=True)

        assert result.conservative.name == "Conservative"
        assert result.conservative.successRate == max(s.successRate for s in ranked)
        assert result.balanced.name == "Balanced"
        assert result.balanced.score == ranked[0].score
        assert result.aggressive.name == "Aggressive"
        assert result.methodology.startswith("Historical rolling period analysis using data from 1928-2024")

    async def test_roles_are_copies(self, random_series, test_settings):
        service = AllocationAnalysisService(random_series, test_settings)
        result = await service.analyze_allocations(_user())
        assert all(s.name == "" for s in result.rankedStrategies)

    async def test_every_candidate_meets_target(self, random_series, test_settings):
        service = AllocationAnalysisService(random_series, test_settings)
        result = await service.analyze_allocations(_user())
        for strategy in result.rankedStrategies:
            assert strategy.successRate >= 90.0
            assert strategy.stockPct + strategy.bondPct == pytest.approx(100.0)

    async def test_no_windows_gives_empty_result(self, zero_series, test_settings):
        # 55-year horizon does not fit a 50-year series
        service = AllocationAnalysisService(zero_series, test_settings)
        result = await service.analyze_allocations(_user(currentAge=30, retirementAge=40))

        assert not result.hasResults
        assert "adjust your inputs" in result.message
        assert result.conservative is None
        assert result.rankedStrategies == []

    async def test_invalid_duration(self, random_series, test_settings):
        service = AllocationAnalysisService(random_series, test_settings)
        with pytest.raises(InvalidDurationError):
            await service.analyze_allocations(_user(currentAge=90, retirementAge=96))

    async def test_failed_sweep_is_omitted(self, random_series, test_settings, monkeypatch):
        real_solver = SolverService.solve_withdrawal_rate

        def flaky(series, total_balance, duration_years, target, stock_allocation, cancel_token=None):
            if stock_allocation == 0.50:
                raise ZeroDivisionError("simulated numeric failure")
            return real_solver(series, total_balance, duration_years, target, stock_allocation, cancel_token)

        monkeypatch.setattr(SolverService, "solve_withdrawal_rate", staticmethod(flaky))
        service = AllocationAnalysisService(random_series, test_settings)
        result = await service.analyze_allocations(_user())

        assert result.hasResults
        assert result.allocationsAnalyzed == 8
        assert 50.0 not in [s.stockPct for s in result.rankedStrategies]

    async def test_unexpected_failure_is_omitted(self, random_series, test_settings, monkeypatch):
        real_solver = SolverService.solve_withdrawal_rate

        def flaky(series, total_balance, duration_years, target, stock_allocation, cancel_token=None):
            if stock_allocation == 0.70:
                raise KeyError("unexpected failure")
            return real_solver(series, total_balance, duration_years, target, stock_allocation, cancel_token)

        monkeypatch.setattr(SolverService, "solve_withdrawal_rate", staticmethod(flaky))
        service = AllocationAnalysisService(random_series, test_settings)
        result = await service.analyze_allocations(_user())

        assert result.hasResults
        assert 70.0 not in [s.stockPct for s in result.rankedStrategies]

    async def test_cancelled_request(self, random_series, test_settings):
        token = CancellationToken()
        token.cancel()
        service = AllocationAnalysisService(random_series, test_settings)
        with pytest.raises(CalculationCancelledError):
            await service.analyze_allocations(_user(), token)

    async def test_timeout(self, random_series):
        config = Settings(MAX_CONCURRENT_SWEEPS=2, SWEEP_TIMEOUT_SECONDS=0.000001)
        token = CancellationToken()
        service = AllocationAnalysisService(random_series, config)
        with pytest.raises(CalculationTimeoutError):
            await service.analyze_allocations(_user(), token)
        assert token.cancelled


class TestScoringAndSelection:

    def test_score(self):
        # 0.6 * 100 + min(25, 10 * 2) + max(0, 15 - 0.5 * 10)
        assert AllocationAnalysisService.calculate_score(100.0, 2_000_000, 10.0, 1_000_000) == pytest.approx(90.0)

    def test_score_caps(self):
        score = AllocationAnalysisService.calculate_score(50.0, 10_000_000, 40.0, 1_000_000)
        assert score == pytest.approx(30.0 + 25.0 + 0.0)

    def test_conservative_ties_break_on_volatility(self):
        strategies = [_strategy(60, 100.0, 1, 12.0, 80), _strategy(40, 100.0, 1, 8.0, 70), _strategy(80, 95.0, 1, 5.0, 60)]
        assert AllocationAnalysisService.select_conservative(strategies).stockPct == 40

    def test_balanced_is_highest_score(self):
        strategies = [_strategy(60, 100.0, 1, 12.0, 80), _strategy(40, 100.0, 1, 8.0, 85)]
        assert AllocationAnalysisService.select_balanced(strategies).stockPct == 40

    def test_aggressive_prefers_qualified_then_stock_share(self):
        strategies = [
            _strategy(100, 80.0, 9_000_000, 20.0, 50),
            _strategy(70, 90.0, 5_000_000, 12.0, 70),
            _strategy(80, 90.0, 5_000_000, 14.0, 65),
        ]
        assert AllocationAnalysisService.select_aggressive(strategies).stockPct == 80

    def test_aggressive_falls_back_to_highest_median(self):
        strategies = [_strategy(100, 80.0, 9_000_000, 20.0, 50), _strategy(30, 70.0, 1_000_000, 5.0, 40)]
        assert AllocationAnalysisService.select_aggressive(strategies).stockPct == 100

    def test_selection_does_not_mutate_input(self):
        strategies = [_strategy(60, 100.0, 1, 12.0, 80)]
        AllocationAnalysisService.select_conservative(strategies)
        AllocationAnalysisService.select_balanced(strategies)
        assert strategies[0].name == ""
