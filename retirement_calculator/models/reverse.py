from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .early_retirement import RothLadderPlan

# Reverse (Goal-Seeking) Calculation Models


class RiskProfile(str, Enum):
    CONSERVATIVE = "Conservative"
    MODERATE = "Moderate"
    AGGRESSIVE = "Aggressive"


class ReverseCalculationInput(BaseModel):
    desiredAfterTaxIncome: Decimal = Field(ge=10000, le=10000000)
    currentAge: int = Field(ge=18, le=100)
    retirementAge: int = Field(ge=18, le=100)
    successRateThreshold: Decimal = Field(ge=Decimal("0.85"), le=Decimal("0.98"))

    # Optional: current savings for gap analysis
    currentRetirementAccountBalance: Optional[Decimal] = Field(default=None, ge=0)
    currentTaxableAccountBalance: Optional[Decimal] = Field(default=None, ge=0)

    # Optional: for the savings roadmap
    annualSavings: Optional[Decimal] = Field(default=None, ge=0)

    # When omitted all three profiles are calculated
    preferredRiskProfile: Optional[RiskProfile] = None

    @model_validator(mode="after")
    def check_ages(self):
        if self.retirementAge <= self.currentAge:
            raise ValueError("Retirement age must be greater than current age")
        return self

    @property
    def hasCurrentSavings(self) -> bool:
        return self.currentRetirementAccountBalance is not None or self.currentTaxableAccountBalance is not None

    @property
    def currentTotalSavings(self) -> Decimal:
        return (self.currentRetirementAccountBalance or Decimal("0")) + (self.currentTaxableAccountBalance or Decimal("0"))


class RiskProfileScenario(BaseModel):
    riskProfile: RiskProfile
    requiredPortfolioSize: Decimal
    withdrawalRate: Decimal  # percent
    annualPreTaxWithdrawal: Decimal
    annualAfterTaxIncome: Decimal
    estimatedAnnualTaxes: Decimal
    effectiveTaxRate: Decimal  # percent
    historicalSuccessRate: Decimal  # percent
    targetSuccessRate: Decimal  # percent
    stockAllocationPercent: int
    bondAllocationPercent: int
    medianFinalPortfolioValue: Decimal
    worstCaseScenario: Decimal
    bestCaseScenario: Decimal

    # Early retirement specific
    earlyWithdrawalPenalty: Optional[Decimal] = None  # per year
    yearsWithPenalty: Optional[int] = None
    penaltyWarning: Optional[str] = None
    rothConversionAnalysis: Optional[RothLadderPlan] = None

    recommendation: str = ""


class SavingsMilestone(BaseModel):
    riskProfile: RiskProfile
    # Linear (no growth) years at the current savings rate; None when already funded
    yearsToReachGoal: Optional[int] = None
    # Monthly amount that closes the gap by retirement age; None when already funded
    requiredMonthlySavings: Optional[Decimal] = None


class SavingsRoadmap(BaseModel):
    annualSavingsAmount: Decimal
    yearsUntilRetirement: int
    milestones: List[SavingsMilestone] = []
    recommendation: str = ""


class ProfileGap(BaseModel):
    riskProfile: RiskProfile
    requiredAmount: Decimal
    # required - current savings; negative means over-funded
    gap: Decimal


class GapAnalysis(BaseModel):
    currentTotalSavings: Decimal
    profiles: List[ProfileGap] = []
    savingsRoadmap: Optional[SavingsRoadmap] = None

    def gap_for(self, profile: RiskProfile) -> Optional[ProfileGap]:
        return next((p for p in self.profiles if p.riskProfile == profile), None)


class ReverseCalculationResult(BaseModel):
    scenarios: List[RiskProfileScenario] = []
    gapAnalysis: Optional[GapAnalysis] = None
    summary: str = ""
    hasResults: bool = True
