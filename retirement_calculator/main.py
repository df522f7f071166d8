import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from pydantic import BaseModel, ValidationError

from retirement_calculator.core.config import settings
from retirement_calculator.core.exceptions import (
    CalculationCancelledError,
    DataLoadError,
    InvalidDurationError,
)
from retirement_calculator.models import ReverseCalculationInput, UserInput
from retirement_calculator.services.allocation_service import AllocationAnalysisService
from retirement_calculator.services.historical_data_service import HistoricalDataService, HistoricalSeries
from retirement_calculator.services.reverse_calculation_service import ReverseCalculationService
from retirement_calculator.services.withdrawal_service import WithdrawalService

logger = logging.getLogger(__name__)

EXIT_DATA_ERROR = 1
EXIT_INPUT_ERROR = 2
EXIT_CANCELLED = 3


def run_calculate(series: HistoricalSeries, raw: str) -> BaseModel:
    user_input = UserInput.model_validate_json(raw)
    return WithdrawalService.calculate_withdrawal_strategy(series, user_input, settings)


def run_allocations(series: HistoricalSeries, raw: str) -> BaseModel:
    user_input = UserInput.model_validate_json(raw)
    service = AllocationAnalysisService(series, settings)
    return asyncio.run(service.analyze_allocations(user_input))


def run_reverse(series: HistoricalSeries, raw: str) -> BaseModel:
    reverse_input = ReverseCalculationInput.model_validate_json(raw)
    service = ReverseCalculationService(series, settings)
    return asyncio.run(service.calculate_required_portfolio(reverse_input))


COMMANDS = {
    "calculate": run_calculate,
    "allocations": run_allocations,
    "reverse": run_reverse,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="retirement_calculator",
        description=settings.PROJECT_NAME,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  calculate    Safe withdrawal rate, taxes and net income for a portfolio
  allocations  Compare stock/bond mixes and pick conservative/balanced/aggressive
  reverse      Portfolio needed for a desired after-tax income

Examples:
  python -m retirement_calculator calculate --input request.json
  echo '{"currentAge": 40, ...}' | python -m retirement_calculator reverse
        """
    )
    parser.add_argument("command", choices=list(COMMANDS.keys()), help="Calculation to run")
    parser.add_argument("--input", "-i", help="JSON request file (default: read stdin)")
    parser.add_argument("--data", "-d", help="Historical market data JSON (default: HISTORICAL_DATA_PATH)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        series = HistoricalDataService.load(args.data or settings.HISTORICAL_DATA_PATH)
    except DataLoadError as e:
        logger.error(f"Failed to load historical data: {e}")
        return EXIT_DATA_ERROR

    try:
        if args.input:
            with open(args.input, "r") as f:
                raw = f.read()
        else:
            raw = sys.stdin.read()
    except OSError as e:
        logger.error(f"Failed to read request: {e}")
        return EXIT_INPUT_ERROR

    try:
        result = COMMANDS[args.command](series, raw)
    except ValidationError as e:
        logger.error(f"Validation error: {e.errors()}")
        return EXIT_INPUT_ERROR
    except InvalidDurationError as e:
        logger.error(str(e))
        return EXIT_INPUT_ERROR
    except CalculationCancelledError as e:
        logger.error(str(e))
        return EXIT_CANCELLED

    print(result.model_dump_json(indent=2))
    return 0
