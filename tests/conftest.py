"""Shared fixtures: small synthetic market series so results are predictable."""

import numpy as np
import pytest

from retirement_calculator.core.config import Settings
from retirement_calculator.models import MarketYear
from retirement_calculator.services.historical_data_service import HistoricalSeries


def make_series(first_year, last_year, equity=0.0, bond=0.0, inflation=0.0):
    return HistoricalSeries([
        MarketYear(year=y, equityReturn=equity, bondReturn=bond, inflation=inflation)
        for y in range(first_year, last_year + 1)
    ])


def make_series_from_rows(rows):
    """rows: iterable of (year, equity, bond, inflation)."""
    return HistoricalSeries([
        MarketYear(year=y, equityReturn=e, bondReturn=b, inflation=i) for y, e, b, i in rows
    ])


@pytest.fixture
def zero_series():
    # 50 years of flat markets and no inflation
    return make_series(2000, 2049)


@pytest.fixture
def constant_series():
    # 7% stocks, 3% bonds, 2% inflation every year
    return make_series(1926, 2025, equity=0.07, bond=0.03, inflation=0.02)


@pytest.fixture
def short_constant_series():
    return make_series(1960, 2024, equity=0.07, bond=0.03, inflation=0.02)


@pytest.fixture
def random_series():
    rng = np.random.default_rng(42)
    years = range(1928, 2025)
    equity = np.clip(rng.normal(0.10, 0.20, len(years)), -0.9, 1.5)
    bond = np.clip(rng.normal(0.05, 0.08, len(years)), -0.9, 1.5)
    inflation = np.clip(rng.normal(0.03, 0.03, len(years)), -0.1, 0.2)
    return make_series_from_rows(
        (y, float(e), float(b), float(i)) for y, e, b, i in zip(years, equity, bond, inflation)
    )


@pytest.fixture
def test_settings():
    return Settings(LIFE_EXPECTANCY=95, MAX_CONCURRENT_SWEEPS=4, SWEEP_TIMEOUT_SECONDS=None)
