import logging
import math
from decimal import Decimal
from typing import List

from retirement_calculator.models import ConversionYear, PenaltyProfile, RothLadderPlan
from retirement_calculator.services.tax_service import Amount, TaxService, round_currency, to_decimal

logger = logging.getLogger(__name__)

PENALTY_AGE_THRESHOLD = Decimal("59.5")
PENALTY_RATE = Decimal("0.10")
ROTH_CONVERSION_SEASONING_YEARS = 5


class EarlyRetirementService:
    """
    10% early withdrawal penalty on tax-deferred withdrawals taken before age 59.5.
    """

    @staticmethod
    def is_early_retirement(retirement_age: int) -> bool:
        return retirement_age < PENALTY_AGE_THRESHOLD

    @staticmethod
    def is_penalty_age(age: Amount) -> bool:
        return to_decimal(age) < PENALTY_AGE_THRESHOLD

    @staticmethod
    def calculate_penalty(tax_deferred_withdrawal: Amount) -> Decimal:
        withdrawal = to_decimal(tax_deferred_withdrawal)
        if withdrawal <= 0:
            return Decimal("0")
        return withdrawal * PENALTY_RATE

    @staticmethod
    def total_penalties(retirement_age: int, duration_years: int, annual_tax_deferred_withdrawal: Amount) -> PenaltyProfile:
        """
        Penalties accrue for each retirement year while the retiree is under
        59.5, starting in the first year and stopping at the first year that
        is not a penalty year.
        """
        total_penalty = Decimal("0")
        years_with_penalty = 0

        for year in range(duration_years):
            if not EarlyRetirementService.is_penalty_age(retirement_age + year):
                break
            total_penalty += EarlyRetirementService.calculate_penalty(annual_tax_deferred_withdrawal)
            years_with_penalty += 1

        per_year = total_penalty / years_with_penalty if years_with_penalty > 0 else Decimal("0")

        logger.debug(
            f"Total penalties: RetirementAge={retirement_age}, YearsWithPenalty={years_with_penalty}, "
            f"TotalPenalty={total_penalty}"
        )

        return PenaltyProfile(
            totalPenalty=round_currency(total_penalty),
            yearsWithPenalty=years_with_penalty,
            perYearPenalty=round_currency(per_year),
            explanation=EarlyRetirementService.penalty_explanation(years_with_penalty, total_penalty),
        )

    @staticmethod
    def penalty_warning(retirement_age: int) -> str:
        if not EarlyRetirementService.is_early_retirement(retirement_age):
            return ""

        years_until_no_penalty = math.ceil(PENALTY_AGE_THRESHOLD - retirement_age)
        return (
            f"Warning: Retiring at age {retirement_age} means you'll face a 10% early withdrawal penalty "
            f"on tax-deferred account withdrawals for approximately {years_until_no_penalty} years "
            f"(until age {PENALTY_AGE_THRESHOLD})."
        )

    @staticmethod
    def penalty_explanation(years_with_penalty: int, total_penalty: Amount) -> str:
        if years_with_penalty == 0:
            return "No early withdrawal penalties apply. You are withdrawing at or after age 59.5."

        plural = "s" if years_with_penalty != 1 else ""
        return (
            f"Early withdrawal penalty: 10% of tax-deferred withdrawals for {years_with_penalty} year{plural}. "
            f"Total estimated penalties: ${to_decimal(total_penalty):,.2f}. "
            f"Strategy: Minimize penalties by withdrawing from taxable accounts first until age 59.5."
        )


class RothConversionService:
    """
    Compares paying the early withdrawal penalty against a Roth conversion ladder.

    Each year before 59.5 the annual tax-deferred need is converted to a Roth
    IRA and taxed as ordinary income; every conversion can be withdrawn
    penalty-free once it has seasoned for five years.
    """

    @staticmethod
    def evaluate_conversion_strategy(
        retirement_age: int,
        annual_withdrawal_needed: Amount,
        tax_deferred_withdrawal: Amount,
        ordinary_income_tax: Amount,
        early_withdrawal_penalty: Amount,
        years_with_penalty: int,
    ) -> RothLadderPlan:
        logger.info(
            f"Evaluating Roth conversion strategy - RetirementAge: {retirement_age}, "
            f"AnnualNeed: {annual_withdrawal_needed}, YearsWithPenalty: {years_with_penalty}"
        )

        if retirement_age >= PENALTY_AGE_THRESHOLD:
            return RothLadderPlan(
                isRecommended=False,
                strategyExplanation=(
                    "Roth conversion ladder is not necessary. You are retiring at or after age 59.5, "
                    "so no early withdrawal penalties apply."
                ),
            )

        years_until_penalty_free = math.ceil(PENALTY_AGE_THRESHOLD - retirement_age)
        schedule = RothConversionService.build_conversion_schedule(
            retirement_age, to_decimal(tax_deferred_withdrawal), years_until_penalty_free
        )

        conversion_cost = sum((year.conversionTax for year in schedule), Decimal("0"))
        penalty_cost = to_decimal(early_withdrawal_penalty) + to_decimal(ordinary_income_tax) * years_with_penalty
        savings = penalty_cost - conversion_cost

        plan = RothLadderPlan(
            isRecommended=savings > 0,
            totalConversionTaxCost=round_currency(conversion_cost),
            totalPenaltyCost=round_currency(penalty_cost),
            estimatedSavings=round_currency(savings),
            requiresImmediateFunds=years_until_penalty_free >= ROTH_CONVERSION_SEASONING_YEARS,
            yearByYearSchedule=schedule,
        )
        plan.strategyExplanation = RothConversionService._strategy_explanation(plan, years_until_penalty_free)
        plan.transitionWarning = RothConversionService._transition_warning(retirement_age, years_until_penalty_free)

        logger.info(
            f"Roth conversion analysis complete - IsRecommended: {plan.isRecommended}, "
            f"Savings: {plan.estimatedSavings}, ConversionTaxCost: {plan.totalConversionTaxCost}, "
            f"PenaltyCost: {plan.totalPenaltyCost}"
        )
        return plan

    @staticmethod
    def build_conversion_schedule(
        retirement_age: int, tax_deferred_withdrawal: Decimal, years_until_penalty_free: int
    ) -> List[ConversionYear]:
        schedule: List[ConversionYear] = []

        # Conversions for every early year plus the seasoning lead time
        for year in range(years_until_penalty_free + ROTH_CONVERSION_SEASONING_YEARS):
            age = retirement_age + year
            entry = ConversionYear(year=year, age=age)

            if age < PENALTY_AGE_THRESHOLD:
                entry.conversionAmount = tax_deferred_withdrawal
                entry.conversionTax = TaxService.ordinary_income_tax(tax_deferred_withdrawal)
            else:
                entry.notes = "No conversion needed - age 59.5+ allows penalty-free withdrawals"

            if year >= ROTH_CONVERSION_SEASONING_YEARS:
                source_year = year - ROTH_CONVERSION_SEASONING_YEARS
                entry.availableForWithdrawal = schedule[source_year].conversionAmount
                entry.notes = (
                    f"Can withdraw ${entry.availableForWithdrawal:,.2f} from Year {source_year} conversion "
                    f"(5-year seasoning complete)"
                )
            else:
                entry.notes = "Transition year - use taxable accounts or accept penalties if needed"

            logger.debug(f"Year {year} (Age {age}): Converting {entry.conversionAmount}, Tax: {entry.conversionTax}")
            schedule.append(entry)

        return schedule

    @staticmethod
    def _strategy_explanation(plan: RothLadderPlan, years_until_penalty_free: int) -> str:
        if not plan.isRecommended:
            return (
                f"The Roth conversion ladder strategy would cost ${plan.totalConversionTaxCost:,.2f} in conversion taxes, "
                f"compared to ${plan.totalPenaltyCost:,.2f} using the standard penalty approach. "
                f"The penalty approach is more cost-effective by ${abs(plan.estimatedSavings):,.2f}."
            )

        return (
            "Roth Conversion Ladder Recommended: By converting traditional IRA/401(k) funds to a Roth IRA each year "
            "and waiting 5 years for each conversion to season, you can avoid the 10% early withdrawal penalty."
            f"\n\nEstimated savings: ${plan.estimatedSavings:,.2f} "
            f"(${plan.totalPenaltyCost:,.2f} penalty approach vs ${plan.totalConversionTaxCost:,.2f} conversion approach)."
            f"\n\nYou would need to perform Roth conversions for {years_until_penalty_free} years (until age 59.5), "
            "paying ordinary income tax on each conversion in the year it occurs."
        )

    @staticmethod
    def _transition_warning(retirement_age: int, years_until_penalty_free: int) -> str:
        if years_until_penalty_free < ROTH_CONVERSION_SEASONING_YEARS:
            return (
                f"Since you only have {years_until_penalty_free} years until age 59.5, "
                "you can start conversions immediately and they'll be available before you reach the penalty-free age."
            )

        transition_end_age = retirement_age + ROTH_CONVERSION_SEASONING_YEARS
        return (
            f"First {ROTH_CONVERSION_SEASONING_YEARS} Years Transition Period: Roth conversions require a 5-year "
            "seasoning period before you can withdraw the converted principal penalty-free."
            f"\n\nFor the first 5 years of retirement (age {retirement_age} to {transition_end_age}), "
            "you'll need to fund your expenses using:\n"
            "- Taxable account withdrawals (recommended)\n"
            "- Roth IRA contributions (if you made any - always penalty-free)\n"
            "- A mix of small penalty withdrawals if necessary\n\n"
            "Start converting to Roth IRA immediately upon retirement to begin the 5-year clock."
        )
