"""
Exception hierarchy for the calculation core.

Request validation failures are raised by the pydantic input models
(`pydantic.ValidationError`) before any of these can occur.
"""

from typing import List, Optional


class RetirementCalculatorError(Exception):
    """Base class for every error raised by the calculation core."""


class DataLoadError(RetirementCalculatorError):
    """The historical market series is missing, unparseable or invalid."""

    def __init__(self, message: str, violations: Optional[List[str]] = None):
        self.violations = violations or []
        if self.violations:
            message = f"{message}:\n" + "\n".join(self.violations)
        super().__init__(message)


class InvalidDurationError(RetirementCalculatorError, ValueError):
    """The retirement horizon (life expectancy - retirement age) is not positive."""

    def __init__(self, duration_years: int):
        self.duration_years = duration_years
        super().__init__(f"Retirement duration must be positive, got {duration_years} years")


class ComputationError(RetirementCalculatorError):
    """Unexpected numeric failure inside a single simulation sweep."""


class CalculationCancelledError(RetirementCalculatorError):
    """The request was cancelled while sweeps were still running."""


class CalculationTimeoutError(CalculationCancelledError):
    """The request exceeded its time budget and its sweeps were abandoned."""
