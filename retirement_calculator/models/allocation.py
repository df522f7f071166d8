from typing import List, Optional

from pydantic import BaseModel

# Allocation Analysis Models


class AllocationStrategy(BaseModel):
    """One scored stock/bond mix. `name` is assigned only when the mix is picked for a role."""
    name: str = ""
    description: str = ""
    stockPct: float
    bondPct: float

    successRate: float
    medianFinalValue: float
    bestCaseFinalValue: float
    worstCaseFinalValue: float
    volatility: float
    successfulCount: int
    totalCount: int
    failurePeriods: List[str] = []

    recommendedWithdrawalRate: float  # percent
    expectedAnnualWithdrawal: float
    expectedNetIncome: float
    score: float


class AllocationAnalysisResult(BaseModel):
    conservative: Optional[AllocationStrategy] = None
    balanced: Optional[AllocationStrategy] = None
    aggressive: Optional[AllocationStrategy] = None

    # Every candidate that survived, best score first
    rankedStrategies: List[AllocationStrategy] = []

    retirementDuration: int
    targetSuccessRate: float
    totalPortfolioBalance: float
    allocationsAnalyzed: int
    methodology: str = ""

    hasResults: bool = True
    message: str = ""
