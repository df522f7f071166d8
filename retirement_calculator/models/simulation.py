from typing import List

from pydantic import BaseModel, Field, computed_field

# Simulation Models


class SimulationInput(BaseModel):
    initialBalance: float = Field(ge=0)
    withdrawalRate: float = Field(ge=0)
    startYear: int
    durationYears: int
    stockAllocation: float = Field(ge=0, le=1)

    @computed_field
    @property
    def bondAllocation(self) -> float:
        return 1.0 - self.stockAllocation


class SimulationOutcome(BaseModel):
    success: bool
    finalBalance: float
    # Blended return of every year in which growth was applied, in order
    realizedAnnualReturns: List[float] = []

    @property
    def averageReturn(self) -> float:
        if not self.realizedAnnualReturns:
            return 0.0
        return sum(self.realizedAnnualReturns) / len(self.realizedAnnualReturns)


class AggregateStatistics(BaseModel):
    """Rolling-window results for one (balance, rate, duration, allocation) combination."""
    successRate: float = 0.0  # 0-100
    medianFinalValue: float = 0.0
    bestCaseFinalValue: float = 0.0
    worstCaseFinalValue: float = 0.0
    volatility: float = 0.0  # stdev of per-path average returns, in percent
    successfulCount: int = 0
    totalCount: int = 0
    failurePeriods: List[str] = []
