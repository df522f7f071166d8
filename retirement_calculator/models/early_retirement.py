from decimal import Decimal
from typing import List

from pydantic import BaseModel

# Early Withdrawal / Roth Conversion Models


class PenaltyProfile(BaseModel):
    totalPenalty: Decimal = Decimal("0")
    yearsWithPenalty: int = 0
    perYearPenalty: Decimal = Decimal("0")
    explanation: str = ""


class ConversionYear(BaseModel):
    year: int  # 0 = first year of retirement
    age: int
    conversionAmount: Decimal = Decimal("0")
    conversionTax: Decimal = Decimal("0")
    # Converted principal from five years earlier that is now penalty-free
    availableForWithdrawal: Decimal = Decimal("0")
    notes: str = ""


class RothLadderPlan(BaseModel):
    isRecommended: bool = False
    totalConversionTaxCost: Decimal = Decimal("0")
    totalPenaltyCost: Decimal = Decimal("0")
    estimatedSavings: Decimal = Decimal("0")
    requiresImmediateFunds: bool = False
    yearByYearSchedule: List[ConversionYear] = []
    strategyExplanation: str = ""
    transitionWarning: str = ""
