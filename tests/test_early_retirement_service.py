from decimal import Decimal

from retirement_calculator.services.early_retirement_service import EarlyRetirementService, RothConversionService
from retirement_calculator.services.tax_service import TaxService


class TestPenalties:

    def test_retiring_at_50(self):
        profile = EarlyRetirementService.total_penalties(50, 45, Decimal("40000"))
        # Ages 50 through 59
        assert profile.yearsWithPenalty == 10
        assert profile.totalPenalty == Decimal("40000.00")
        assert profile.perYearPenalty == Decimal("4000.00")
        assert "10 years" in profile.explanation

    def test_retiring_at_59(self):
        profile = EarlyRetirementService.total_penalties(59, 36, Decimal("40000"))
        assert profile.yearsWithPenalty == 1
        assert profile.totalPenalty == Decimal("4000.00")
        assert "1 year." in profile.explanation

    def test_retiring_at_60(self):
        profile = EarlyRetirementService.total_penalties(60, 35, Decimal("40000"))
        assert profile.yearsWithPenalty == 0
        assert profile.totalPenalty == Decimal("0.00")
        assert profile.explanation.startswith("No early withdrawal penalties apply")

    def test_horizon_shorter_than_penalty_window(self):
        profile = EarlyRetirementService.total_penalties(50, 3, Decimal("40000"))
        assert profile.yearsWithPenalty == 3

    def test_no_tax_deferred_withdrawal(self):
        profile = EarlyRetirementService.total_penalties(50, 45, Decimal("0"))
        assert profile.totalPenalty == Decimal("0.00")
        assert profile.yearsWithPenalty == 10

    def test_warning(self):
        warning = EarlyRetirementService.penalty_warning(50)
        assert "approximately 10 years" in warning
        assert EarlyRetirementService.penalty_warning(60) == ""


class TestRothConversion:

    def _evaluate(self, retirement_age, withdrawal=Decimal("40000")):
        penalty = EarlyRetirementService.total_penalties(retirement_age, 95 - retirement_age, withdrawal)
        return RothConversionService.evaluate_conversion_strategy(
            retirement_age,
            withdrawal,
            withdrawal,
            TaxService.ordinary_income_tax(withdrawal),
            penalty.totalPenalty,
            penalty.yearsWithPenalty,
        )

    def test_ladder_at_50(self):
        plan = self._evaluate(50)
        schedule = plan.yearByYearSchedule

        assert len(schedule) == 15
        assert plan.totalConversionTaxCost == Decimal("27615.00")
        assert plan.totalPenaltyCost == Decimal("67615.00")
        assert plan.estimatedSavings == Decimal("40000.00")
        assert plan.isRecommended
        assert plan.requiresImmediateFunds
        assert plan.strategyExplanation.startswith("Roth Conversion Ladder Recommended")

    def test_schedule_seasoning(self):
        schedule = self._evaluate(50).yearByYearSchedule

        assert schedule[0].availableForWithdrawal == Decimal("0")
        assert schedule[0].notes.startswith("Transition year")
        assert schedule[5].availableForWithdrawal == Decimal("40000")
        assert "Year 0 conversion" in schedule[5].notes
        # Age 60: nothing left to convert, but year 5's conversion has seasoned
        assert schedule[10].age == 60
        assert schedule[10].conversionAmount == Decimal("0")
        assert schedule[10].availableForWithdrawal == Decimal("40000")

    def test_short_ladder(self):
        plan = self._evaluate(57)
        assert len(plan.yearByYearSchedule) == 8
        assert not plan.requiresImmediateFunds
        assert plan.transitionWarning.startswith("Since you only have 3 years")

    def test_not_needed_after_59_and_a_half(self):
        plan = self._evaluate(60)
        assert not plan.isRecommended
        assert plan.yearByYearSchedule == []
        assert "not necessary" in plan.strategyExplanation

    def test_not_recommended_when_conversion_costs_more(self):
        plan = RothConversionService.evaluate_conversion_strategy(
            50, Decimal("40000"), Decimal("40000"), Decimal("0"), Decimal("100"), 1
        )
        assert not plan.isRecommended
        assert plan.estimatedSavings < 0
        assert "more cost-effective" in plan.strategyExplanation
