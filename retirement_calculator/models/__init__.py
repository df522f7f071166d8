from .market import MarketYear
from .simulation import SimulationInput, SimulationOutcome, AggregateStatistics
from .early_retirement import PenaltyProfile, ConversionYear, RothLadderPlan
from .calculation import UserInput, WithdrawalPlan, CalculationResult
from .allocation import AllocationStrategy, AllocationAnalysisResult
from .reverse import (
    RiskProfile,
    ReverseCalculationInput,
    RiskProfileScenario,
    SavingsMilestone,
    SavingsRoadmap,
    ProfileGap,
    GapAnalysis,
    ReverseCalculationResult
)
