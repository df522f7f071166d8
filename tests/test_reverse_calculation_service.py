import math
from decimal import Decimal

import pytest
from pydantic import ValidationError

from retirement_calculator.core.exceptions import ComputationError, InvalidDurationError
from retirement_calculator.models import ReverseCalculationInput, RiskProfile
from retirement_calculator.services.reverse_calculation_service import ReverseCalculationService
from retirement_calculator.services.solver_service import SolverService


def _input(**overrides):
    values = dict(
        desiredAfterTaxIncome=Decimal("60000"),
        currentAge=45,
        retirementAge=65,
        successRateThreshold=Decimal("0.90"),
    )
    values.update(overrides)
    return ReverseCalculationInput(**values)


class TestReverseCalculation:

    async def test_all_profiles(self, short_constant_series, test_settings):
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(_input())

        assert result.hasResults
        assert [s.riskProfile for s in result.scenarios] == [
            RiskProfile.CONSERVATIVE, RiskProfile.MODERATE, RiskProfile.AGGRESSIVE
        ]
        assert result.gapAnalysis is None
        assert result.summary.startswith("To generate $60,000 per year after taxes in retirement")
        assert "based on Moderate strategy" in result.summary

    async def test_round_trip(self, short_constant_series, test_settings):
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(_input(preferredRiskProfile=RiskProfile.MODERATE))

        assert len(result.scenarios) == 1
        scenario = result.scenarios[0]
        assert scenario.stockAllocationPercent == 60
        assert scenario.bondAllocationPercent == 40
        assert scenario.targetSuccessRate == Decimal("90.00")
        assert scenario.historicalSuccessRate >= Decimal("90")
        assert abs(scenario.annualAfterTaxIncome - Decimal("60000")) <= SolverService.PORTFOLIO_TOLERANCE
        assert scenario.earlyWithdrawalPenalty is None
        assert scenario.recommendation.startswith("Moderate strategy has")

    async def test_early_retiree(self, short_constant_series, test_settings):
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(
            _input(currentAge=35, retirementAge=50, preferredRiskProfile=RiskProfile.CONSERVATIVE)
        )

        scenario = result.scenarios[0]
        assert scenario.yearsWithPenalty == 10
        assert scenario.earlyWithdrawalPenalty > 0
        assert scenario.penaltyWarning.startswith("Warning: Retiring at age 50")
        assert scenario.rothConversionAnalysis is not None
        assert abs(scenario.annualAfterTaxIncome - Decimal("60000")) <= SolverService.PORTFOLIO_TOLERANCE

    async def test_gap_and_roadmap(self, short_constant_series, test_settings):
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(
            _input(currentRetirementAccountBalance=Decimal("100000"), annualSavings=Decimal("20000"))
        )

        gaps = result.gapAnalysis
        assert gaps.currentTotalSavings == Decimal("100000")
        moderate = gaps.gap_for(RiskProfile.MODERATE)
        assert moderate.gap == moderate.requiredAmount - Decimal("100000")
        assert moderate.gap > 0

        roadmap = gaps.savingsRoadmap
        assert roadmap.yearsUntilRetirement == 20
        milestone = next(m for m in roadmap.milestones if m.riskProfile == RiskProfile.MODERATE)
        assert milestone.yearsToReachGoal == math.ceil(moderate.gap / Decimal("20000"))
        assert milestone.requiredMonthlySavings == (moderate.gap / 240).quantize(Decimal("0.01"))
        assert "leaving a gap of" in result.summary

    async def test_over_funded(self, short_constant_series, test_settings):
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(
            _input(currentTaxableAccountBalance=Decimal("50000000"), annualSavings=Decimal("10000"))
        )

        assert all(p.gap < 0 for p in result.gapAnalysis.profiles)
        assert all(m.yearsToReachGoal is None for m in result.gapAnalysis.savingsRoadmap.milestones)
        assert "Good news" in result.summary
        assert result.gapAnalysis.savingsRoadmap.recommendation.startswith("Increase your annual savings")

    async def test_no_roadmap_without_savings(self, short_constant_series, test_settings):
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(
            _input(currentRetirementAccountBalance=Decimal("100000"), preferredRiskProfile=RiskProfile.AGGRESSIVE)
        )
        assert result.gapAnalysis.savingsRoadmap is None

    async def test_all_profiles_fail(self, short_constant_series, test_settings, monkeypatch):
        def broken(*args, **kwargs):
            raise ComputationError("simulated failure")

        monkeypatch.setattr(SolverService, "solve_required_portfolio", staticmethod(broken))
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(_input())

        assert not result.hasResults
        assert result.scenarios == []
        assert result.summary == "Unable to calculate required portfolio. Please adjust your inputs."

    async def test_failing_profile_is_dropped(self, short_constant_series, test_settings, monkeypatch):
        real_solver = SolverService.solve_required_portfolio

        def flaky(series, desired, retirement_age, current_age, target, stock_allocation, *args, **kwargs):
            if stock_allocation == 0.80:
                raise IndexError("unexpected failure in one profile")
            return real_solver(series, desired, retirement_age, current_age, target, stock_allocation, *args, **kwargs)

        monkeypatch.setattr(SolverService, "solve_required_portfolio", staticmethod(flaky))
        service = ReverseCalculationService(short_constant_series, test_settings)
        result = await service.calculate_required_portfolio(_input())

        assert result.hasResults
        assert [s.riskProfile for s in result.scenarios] == [RiskProfile.CONSERVATIVE, RiskProfile.MODERATE]

    async def test_invalid_duration(self, short_constant_series, test_settings):
        service = ReverseCalculationService(short_constant_series, test_settings)
        with pytest.raises(InvalidDurationError):
            await service.calculate_required_portfolio(_input(currentAge=90, retirementAge=97))


class TestReverseInputValidation:

    def test_retirement_must_follow_current_age(self):
        with pytest.raises(ValidationError):
            _input(currentAge=65, retirementAge=65)

    def test_income_bounds(self):
        with pytest.raises(ValidationError):
            _input(desiredAfterTaxIncome=Decimal("5000"))

    def test_threshold_bounds(self):
        with pytest.raises(ValidationError):
            _input(successRateThreshold=Decimal("0.99"))

    def test_current_savings(self):
        data = _input(currentRetirementAccountBalance=Decimal("1000"), currentTaxableAccountBalance=Decimal("500"))
        assert data.hasCurrentSavings
        assert data.currentTotalSavings == Decimal("1500")
        assert not _input().hasCurrentSavings
