import json
import logging
from collections import Counter
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter, ValidationError

from retirement_calculator.core.config import settings
from retirement_calculator.core.exceptions import DataLoadError
from retirement_calculator.models import MarketYear

logger = logging.getLogger(__name__)

_MARKET_YEARS = TypeAdapter(List[MarketYear])

HistoricalSource = Union[str, Path, Iterable[Mapping[str, Any]]]


class HistoricalSeries:
    """
    Immutable, year-ordered view of the historical market data.

    Built once at startup and shared by every simulation. Nothing mutates it
    after construction, so concurrent sweeps can read it without locking.
    """

    def __init__(self, market_years: Sequence[MarketYear]):
        if not market_years:
            raise DataLoadError("Historical series is empty")
        ordered = sorted(market_years, key=lambda m: m.year)
        self._years: Tuple[MarketYear, ...] = tuple(ordered)
        self._by_year = {m.year: m for m in ordered}
        self._min_year = ordered[0].year
        self._max_year = ordered[-1].year

    def get_year(self, year: int) -> Optional[MarketYear]:
        return self._by_year.get(year)

    def year_range(self) -> Tuple[int, int]:
        return self._min_year, self._max_year

    def scenario_count(self, duration_years: int) -> int:
        """Number of rolling windows of `duration_years` that fit the series."""
        return max(0, self._max_year - self._min_year - duration_years + 1)

    def __len__(self) -> int:
        return len(self._years)

    def __iter__(self) -> Iterator[MarketYear]:
        return iter(self._years)


class HistoricalDataService:
    """
    Loads and validates the historical market series.

    Validation reports every bad record and every duplicated year together,
    so a broken data file can be fixed in one pass.
    """

    @staticmethod
    def load(source: HistoricalSource) -> HistoricalSeries:
        if isinstance(source, (str, Path)):
            raw = HistoricalDataService._read_json(Path(source))
        else:
            raw = list(source)

        if not isinstance(raw, list) or len(raw) == 0:
            raise DataLoadError("Failed to parse historical market data or source is empty")

        duplicates = HistoricalDataService._duplicate_years(raw)
        duplicate_violations = [f"Year {year} appears more than once" for year in duplicates]

        try:
            market_years = _MARKET_YEARS.validate_python(raw)
        except ValidationError as e:
            violations = [HistoricalDataService._describe_error(raw, err) for err in e.errors()]
            violations.extend(duplicate_violations)
            logger.error(f"Historical data validation failed with {len(violations)} violation(s)")
            raise DataLoadError("Data validation failed", violations) from e

        if duplicates:
            logger.error(f"Historical data has {len(duplicates)} duplicated year(s)")
            raise DataLoadError("Duplicate years found in historical data", duplicate_violations)

        series = HistoricalSeries(market_years)
        min_year, max_year = series.year_range()
        logger.info(f"Historical data loaded successfully. {len(series)} years of data from {min_year} to {max_year}")
        return series

    @staticmethod
    def _read_json(path: Path) -> Any:
        logger.info(f"Loading historical data from: {path}")
        if not path.exists():
            raise DataLoadError(f"Historical market data file not found at: {path}")
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise DataLoadError(f"Failed to parse historical market data at {path}: {e}") from e

    @staticmethod
    def _duplicate_years(raw: list) -> List[Any]:
        """Years repeated across the raw records, checked independently of field validation."""
        years = [r["year"] for r in raw if isinstance(r, Mapping) and "year" in r]
        counts = Counter(year for year in years if isinstance(year, (int, str)))
        return sorted((year for year, count in counts.items() if count > 1), key=str)

    @staticmethod
    def _describe_error(raw: list, err: dict) -> str:
        loc = err.get("loc", ())
        index = loc[0] if loc and isinstance(loc[0], int) else None
        field = ".".join(str(part) for part in loc[1:]) or "record"
        label = f"Record {index}"
        if index is not None and isinstance(raw[index], Mapping) and "year" in raw[index]:
            label = f"Year {raw[index]['year']}"
        return f"{label}: {field}: {err.get('msg')} (got {err.get('input')!r})"


@lru_cache(maxsize=1)
def get_historical_series() -> HistoricalSeries:
    """Process-wide series loaded from settings.HISTORICAL_DATA_PATH on first use."""
    return HistoricalDataService.load(settings.HISTORICAL_DATA_PATH)
