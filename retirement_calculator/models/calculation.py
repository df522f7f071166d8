from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from .early_retirement import PenaltyProfile, RothLadderPlan
from .simulation import AggregateStatistics

# Standard Calculation Models

ALLOWED_SUCCESS_THRESHOLDS = (Decimal("0.90"), Decimal("0.95"), Decimal("0.98"))


class UserInput(BaseModel):
    currentAge: int = Field(ge=18, le=100)
    retirementAge: int = Field(ge=18, le=100)
    retirementAccountBalance: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    taxableAccountBalance: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    # 0.90 for 90%, 0.95 for 95%, 0.98 for 98%
    successRateThreshold: Decimal

    @field_validator("successRateThreshold")
    @classmethod
    def check_threshold(cls, v: Decimal) -> Decimal:
        if v not in ALLOWED_SUCCESS_THRESHOLDS:
            raise ValueError("Success rate threshold must be 0.90, 0.95, or 0.98")
        return v

    @model_validator(mode="after")
    def check_ages(self):
        if self.retirementAge < self.currentAge:
            raise ValueError("Retirement age must be greater than or equal to current age")
        return self

    @property
    def totalBalance(self) -> Decimal:
        return self.retirementAccountBalance + self.taxableAccountBalance


class WithdrawalPlan(BaseModel):
    """How one year's gross withdrawal is sourced and taxed."""
    grossAnnualWithdrawal: Decimal
    taxableSourceAmount: Decimal
    taxDeferredSourceAmount: Decimal
    ordinaryIncomeTax: Decimal
    capitalGainsTax: Decimal
    effectiveTaxRatePct: Decimal

    @computed_field
    @property
    def totalTax(self) -> Decimal:
        return self.ordinaryIncomeTax + self.capitalGainsTax

    @computed_field
    @property
    def netAnnualIncome(self) -> Decimal:
        return self.grossAnnualWithdrawal - self.totalTax


class CalculationResult(BaseModel):
    withdrawalRate: float  # percent, e.g. 4.0
    annualGrossWithdrawal: Decimal
    estimatedAnnualTaxes: Decimal
    netAnnualIncome: Decimal
    achievedSuccessRate: float  # percent
    numberOfScenariosSimulated: int
    retirementDuration: int
    stockAllocation: float
    withdrawalPlan: WithdrawalPlan
    statistics: AggregateStatistics

    # Early retirement only
    earlyWithdrawalPenalty: Optional[PenaltyProfile] = None
    penaltyWarning: Optional[str] = None
    rothConversionAnalysis: Optional[RothLadderPlan] = None
