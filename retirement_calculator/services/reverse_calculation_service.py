import logging
import math
from decimal import Decimal
from typing import List, NamedTuple, Optional

from retirement_calculator.core.concurrency import CancellationToken, run_sweeps
from retirement_calculator.core.config import Settings, settings as default_settings
from retirement_calculator.core.exceptions import ComputationError, RetirementCalculatorError
from retirement_calculator.models import (
    GapAnalysis,
    ProfileGap,
    ReverseCalculationInput,
    ReverseCalculationResult,
    RiskProfile,
    RiskProfileScenario,
    RothLadderPlan,
    SavingsMilestone,
    SavingsRoadmap,
)
from retirement_calculator.services.early_retirement_service import EarlyRetirementService, RothConversionService
from retirement_calculator.services.historical_data_service import HistoricalSeries
from retirement_calculator.services.simulation_service import SimulationService
from retirement_calculator.services.solver_service import SolverService
from retirement_calculator.services.tax_service import TaxService, round_currency, to_decimal

logger = logging.getLogger(__name__)


class ProfileSettings(NamedTuple):
    profile: RiskProfile
    target_success_rate: Decimal
    stock_allocation: Decimal


class ReverseCalculationService:
    """
    Works backwards from a desired after-tax income to the portfolio needed
    to fund it, once per risk profile.

    The whole portfolio is treated as tax-deferred: every withdrawal is
    ordinary income and, before 59, subject to the early withdrawal penalty.
    """

    RISK_PROFILES = [
        ProfileSettings(RiskProfile.CONSERVATIVE, Decimal("0.95"), Decimal("0.40")),
        ProfileSettings(RiskProfile.MODERATE, Decimal("0.90"), Decimal("0.60")),
        ProfileSettings(RiskProfile.AGGRESSIVE, Decimal("0.85"), Decimal("0.80")),
    ]

    # Profile the summary and savings advice are phrased around
    HEADLINE_PROFILE = RiskProfile.MODERATE

    def __init__(self, series: HistoricalSeries, config: Settings = default_settings):
        self.series = series
        self.config = config

    async def calculate_required_portfolio(
        self, data: ReverseCalculationInput, cancel_token: Optional[CancellationToken] = None
    ) -> ReverseCalculationResult:
        cancel_token = cancel_token or CancellationToken()
        # Fail the whole request, not each sweep, on an impossible horizon
        SimulationService.retirement_duration(data.retirementAge, self.config.LIFE_EXPECTANCY)
        logger.info(
            f"Reverse calculation: ${data.desiredAfterTaxIncome} after tax, age {data.currentAge} -> "
            f"{data.retirementAge}, preferred profile {data.preferredRiskProfile}"
        )

        profiles = self.RISK_PROFILES
        if data.preferredRiskProfile is not None:
            profiles = [p for p in profiles if p.profile == data.preferredRiskProfile]

        sweeps = [
            (p.profile.value, lambda p=p: self.calculate_scenario(data, p, cancel_token))
            for p in profiles
        ]
        results = await run_sweeps(
            sweeps, cancel_token, self.config.MAX_CONCURRENT_SWEEPS, self.config.SWEEP_TIMEOUT_SECONDS
        )

        result = ReverseCalculationResult(scenarios=[s for s in results if s is not None])
        result.hasResults = len(result.scenarios) > 0

        if data.hasCurrentSavings:
            result.gapAnalysis = self.gap_analysis(data, result.scenarios)

        result.summary = self.summary(data, result)
        logger.info(f"Reverse calculation complete: {len(result.scenarios)} of {len(profiles)} profiles solved")
        return result

    def calculate_scenario(
        self,
        data: ReverseCalculationInput,
        profile: ProfileSettings,
        cancel_token: Optional[CancellationToken] = None,
    ) -> RiskProfileScenario:
        target_pct = float(profile.target_success_rate * 100)
        stock_allocation = float(profile.stock_allocation)
        duration = SimulationService.retirement_duration(data.retirementAge, self.config.LIFE_EXPECTANCY)

        try:
            required = SolverService.solve_required_portfolio(
                self.series,
                data.desiredAfterTaxIncome,
                data.retirementAge,
                data.currentAge,
                target_pct,
                stock_allocation,
                self.config.LIFE_EXPECTANCY,
                cancel_token,
            )
            if required <= 0:
                raise ComputationError(f"{profile.profile.value}: non-positive required portfolio {required}")

            rate = SolverService.solve_withdrawal_rate(
                self.series, float(required), duration, target_pct, stock_allocation, cancel_token
            )
            stats = SimulationService.aggregate_over_all_windows(
                self.series, float(required), rate, duration, stock_allocation, cancel_token
            )

            gross = required * to_decimal(rate)
            taxes = TaxService.total_tax(Decimal("0"), gross)
            after_tax = gross - taxes
            effective_rate = taxes / gross * 100 if gross > 0 else Decimal("0")
        except RetirementCalculatorError:
            raise
        except Exception as e:
            logger.error(f"Error calculating scenario for {profile.profile.value}: {e}")
            raise ComputationError(f"Error calculating scenario for {profile.profile.value}: {e}") from e

        scenario = RiskProfileScenario(
            riskProfile=profile.profile,
            requiredPortfolioSize=round_currency(required),
            withdrawalRate=round_currency(to_decimal(rate) * 100),
            annualPreTaxWithdrawal=round_currency(gross),
            annualAfterTaxIncome=round_currency(after_tax),
            estimatedAnnualTaxes=round_currency(taxes),
            effectiveTaxRate=round_currency(effective_rate),
            historicalSuccessRate=round_currency(stats.successRate),
            targetSuccessRate=round_currency(target_pct),
            stockAllocationPercent=int(profile.stock_allocation * 100),
            bondAllocationPercent=int((1 - profile.stock_allocation) * 100),
            medianFinalPortfolioValue=round_currency(stats.medianFinalValue),
            worstCaseScenario=round_currency(stats.worstCaseFinalValue),
            bestCaseScenario=round_currency(stats.bestCaseFinalValue),
        )

        if data.retirementAge < SolverService.PENALTY_RETIREMENT_AGE:
            penalty = EarlyRetirementService.total_penalties(data.retirementAge, duration, gross)
            scenario.earlyWithdrawalPenalty = penalty.perYearPenalty
            scenario.yearsWithPenalty = penalty.yearsWithPenalty
            scenario.penaltyWarning = EarlyRetirementService.penalty_warning(data.retirementAge)
            scenario.annualAfterTaxIncome = round_currency(after_tax - penalty.perYearPenalty)

            if penalty.yearsWithPenalty > 0:
                scenario.rothConversionAnalysis = RothConversionService.evaluate_conversion_strategy(
                    data.retirementAge,
                    gross,
                    gross,
                    TaxService.ordinary_income_tax(gross),
                    penalty.totalPenalty,
                    penalty.yearsWithPenalty,
                )

        scenario.recommendation = self.scenario_recommendation(
            profile.profile, stats.successRate, scenario.rothConversionAnalysis
        )
        return scenario

    @staticmethod
    def scenario_recommendation(profile: RiskProfile, success_rate: float, roth: Optional[RothLadderPlan]) -> str:
        recommendation = f"{profile.value} strategy has {success_rate:.1f}% historical success rate. "
        if roth is not None and roth.isRecommended:
            recommendation += f"Consider Roth conversion ladder to save ${roth.estimatedSavings:,.0f} in penalties."
        return recommendation

    def gap_analysis(self, data: ReverseCalculationInput, scenarios: List[RiskProfileScenario]) -> GapAnalysis:
        current = data.currentTotalSavings
        analysis = GapAnalysis(
            currentTotalSavings=current,
            profiles=[
                ProfileGap(
                    riskProfile=s.riskProfile,
                    requiredAmount=s.requiredPortfolioSize,
                    gap=s.requiredPortfolioSize - current,
                )
                for s in scenarios
            ],
        )

        if data.annualSavings is not None and data.annualSavings > 0:
            analysis.savingsRoadmap = self.savings_roadmap(
                data.currentAge, data.retirementAge, data.annualSavings, analysis
            )
        return analysis

    def savings_roadmap(
        self, current_age: int, retirement_age: int, annual_savings: Decimal, analysis: GapAnalysis
    ) -> SavingsRoadmap:
        """Linear projection; investment growth on the savings is ignored."""
        years_until_retirement = retirement_age - current_age
        milestones = []

        for profile_gap in analysis.profiles:
            milestone = SavingsMilestone(riskProfile=profile_gap.riskProfile)
            if profile_gap.gap > 0:
                milestone.yearsToReachGoal = math.ceil(profile_gap.gap / annual_savings)
                if years_until_retirement > 0:
                    milestone.requiredMonthlySavings = round_currency(
                        profile_gap.gap / (years_until_retirement * 12)
                    )
            milestones.append(milestone)

        roadmap = SavingsRoadmap(
            annualSavingsAmount=annual_savings,
            yearsUntilRetirement=years_until_retirement,
            milestones=milestones,
        )
        roadmap.recommendation = self.savings_recommendation(roadmap)
        return roadmap

    def savings_recommendation(self, roadmap: SavingsRoadmap) -> str:
        headline = next((m for m in roadmap.milestones if m.riskProfile == self.HEADLINE_PROFILE), None)
        name = self.HEADLINE_PROFILE.value

        if headline is not None and headline.yearsToReachGoal is not None \
                and headline.yearsToReachGoal <= roadmap.yearsUntilRetirement:
            return (
                f"At your current savings rate, you'll reach the {name} goal in {headline.yearsToReachGoal} years, "
                "before your planned retirement."
            )
        if headline is not None and headline.requiredMonthlySavings is not None:
            monthly = headline.requiredMonthlySavings
            return (
                f"To reach the {name} goal by retirement, save ${monthly:,.0f} per month "
                f"(${monthly * 12:,.0f} annually)."
            )
        return "Increase your annual savings to reach your retirement goals on time."

    def summary(self, data: ReverseCalculationInput, result: ReverseCalculationResult) -> str:
        if not result.scenarios:
            return "Unable to calculate required portfolio. Please adjust your inputs."

        headline = next(
            (s for s in result.scenarios if s.riskProfile == self.HEADLINE_PROFILE), result.scenarios[0]
        )
        summary = (
            f"To generate ${data.desiredAfterTaxIncome:,.0f} per year after taxes in retirement, "
            f"you need approximately ${headline.requiredPortfolioSize:,.0f} "
            f"(based on {headline.riskProfile.value} strategy with {headline.historicalSuccessRate:.1f}% success rate)."
        )

        gaps = result.gapAnalysis
        if gaps is not None and gaps.currentTotalSavings > 0:
            profile_gap = gaps.gap_for(headline.riskProfile)
            if profile_gap is not None and profile_gap.gap > 0:
                summary += (
                    f" You currently have ${gaps.currentTotalSavings:,.0f} saved, "
                    f"leaving a gap of ${profile_gap.gap:,.0f}."
                )
            elif profile_gap is not None:
                summary += (
                    f" Good news: Your current savings of ${gaps.currentTotalSavings:,.0f} "
                    "exceeds this requirement!"
                )
        return summary
