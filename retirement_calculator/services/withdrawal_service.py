import logging
from decimal import Decimal
from typing import Optional, Tuple

from retirement_calculator.core.concurrency import CancellationToken
from retirement_calculator.core.config import Settings, settings as default_settings
from retirement_calculator.models import CalculationResult, UserInput, WithdrawalPlan
from retirement_calculator.services.early_retirement_service import EarlyRetirementService, RothConversionService
from retirement_calculator.services.historical_data_service import HistoricalSeries
from retirement_calculator.services.simulation_service import SimulationService
from retirement_calculator.services.solver_service import SolverService
from retirement_calculator.services.tax_service import Amount, TaxService, round_currency, to_decimal

logger = logging.getLogger(__name__)


class WithdrawalService:
    """
    Standard withdrawal calculation: how much a portfolio can safely pay out
    each year, where the money comes from and what it costs in tax.
    """

    @staticmethod
    def tax_optimized_split(
        total_withdrawal: Amount, taxable_balance: Amount, tax_deferred_balance: Amount
    ) -> Tuple[Decimal, Decimal]:
        """
        Returns (taxable_withdrawal, tax_deferred_withdrawal).

        Tax-deferred money is drawn first, up to the amount the standard
        deduction and the 10%/12% brackets can absorb. The rest comes from
        the taxable account, with any shortfall taken back from tax-deferred.
        """
        total = to_decimal(total_withdrawal)
        taxable_balance = to_decimal(taxable_balance)
        tax_deferred_balance = to_decimal(tax_deferred_balance)

        if tax_deferred_balance <= 0:
            return total, Decimal("0")
        if taxable_balance <= 0:
            return Decimal("0"), total

        low_bracket_ceiling = TaxService.standard_deduction() + TaxService.top_of_bracket(Decimal("0.12"))
        optimal_tax_deferred = min(low_bracket_ceiling, min(total, tax_deferred_balance))

        taxable_withdrawal = min(total - optimal_tax_deferred, taxable_balance)
        tax_deferred_withdrawal = total - taxable_withdrawal
        return taxable_withdrawal, tax_deferred_withdrawal

    @staticmethod
    def build_withdrawal_plan(gross_withdrawal: Amount, taxable_balance: Amount, tax_deferred_balance: Amount) -> WithdrawalPlan:
        gross = round_currency(gross_withdrawal)
        taxable, tax_deferred = WithdrawalService.tax_optimized_split(gross, taxable_balance, tax_deferred_balance)

        ordinary_tax = TaxService.ordinary_income_tax(tax_deferred)
        capital_gains_tax = TaxService.long_term_capital_gains_tax(taxable, tax_deferred)
        total_tax = ordinary_tax + capital_gains_tax
        effective_rate = round_currency(total_tax / gross * 100) if gross > 0 else Decimal("0.00")

        return WithdrawalPlan(
            grossAnnualWithdrawal=gross,
            taxableSourceAmount=round_currency(taxable),
            taxDeferredSourceAmount=round_currency(tax_deferred),
            ordinaryIncomeTax=ordinary_tax,
            capitalGainsTax=capital_gains_tax,
            effectiveTaxRatePct=effective_rate,
        )

    @staticmethod
    def calculate_withdrawal_strategy(
        series: HistoricalSeries,
        user_input: UserInput,
        config: Settings = default_settings,
        cancel_token: Optional[CancellationToken] = None,
    ) -> CalculationResult:
        total_balance = user_input.totalBalance
        target_pct = float(user_input.successRateThreshold * 100)
        stock_allocation = config.DEFAULT_STOCK_ALLOCATION

        logger.info(
            f"Calculating withdrawal strategy for retirement age {user_input.retirementAge}, "
            f"balance ${total_balance}, threshold {target_pct}%"
        )

        duration = SimulationService.retirement_duration(user_input.retirementAge, config.LIFE_EXPECTANCY)

        rate = SolverService.solve_withdrawal_rate(
            series, float(total_balance), duration, target_pct, stock_allocation, cancel_token
        )
        stats = SimulationService.aggregate_over_all_windows(
            series, float(total_balance), rate, duration, stock_allocation, cancel_token
        )

        plan = WithdrawalService.build_withdrawal_plan(
            total_balance * to_decimal(rate),
            user_input.taxableAccountBalance,
            user_input.retirementAccountBalance,
        )

        result = CalculationResult(
            withdrawalRate=rate * 100,
            annualGrossWithdrawal=plan.grossAnnualWithdrawal,
            estimatedAnnualTaxes=plan.totalTax,
            netAnnualIncome=plan.netAnnualIncome,
            achievedSuccessRate=stats.successRate,
            numberOfScenariosSimulated=series.scenario_count(duration),
            retirementDuration=duration,
            stockAllocation=stock_allocation,
            withdrawalPlan=plan,
            statistics=stats,
        )

        if EarlyRetirementService.is_early_retirement(user_input.retirementAge) and plan.taxDeferredSourceAmount > 0:
            penalty = EarlyRetirementService.total_penalties(
                user_input.retirementAge, duration, plan.taxDeferredSourceAmount
            )
            result.earlyWithdrawalPenalty = penalty
            result.penaltyWarning = EarlyRetirementService.penalty_warning(user_input.retirementAge)
            result.rothConversionAnalysis = RothConversionService.evaluate_conversion_strategy(
                user_input.retirementAge,
                plan.grossAnnualWithdrawal,
                plan.taxDeferredSourceAmount,
                plan.ordinaryIncomeTax,
                penalty.totalPenalty,
                penalty.yearsWithPenalty,
            )

        logger.info(
            f"Calculation complete: {result.withdrawalRate:.2f}% withdrawal rate, "
            f"{result.achievedSuccessRate:.1f}% success rate over {result.numberOfScenariosSimulated} scenarios"
        )
        return result
