import logging
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Dict, List, NamedTuple, Tuple, Union

logger = logging.getLogger(__name__)

Amount = Union[Decimal, float, int, str]

CENT = Decimal("0.01")


def to_decimal(value: Amount) -> Decimal:
    """Converts floats through their repr so 0.1 stays 0.1 rather than its binary expansion."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def round_currency(value: Amount) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


class TaxSchedule(NamedTuple):
    standard_deduction: Decimal
    # (Lower Limit of taxable income, Rate); the last bracket is open-ended
    ordinary_brackets: Tuple[Tuple[Decimal, Decimal], ...]
    capital_gains_brackets: Tuple[Tuple[Decimal, Decimal], ...]


def _brackets(*pairs: Tuple[str, str]) -> Tuple[Tuple[Decimal, Decimal], ...]:
    return tuple((Decimal(lower), Decimal(rate)) for lower, rate in pairs)


class TaxService:
    """
    Federal income tax on retirement withdrawals, single filer.

    Tax-deferred withdrawals are ordinary income. Taxable-account withdrawals
    are treated entirely as long-term capital gains, stacked on top of the
    ordinary income for bracket purposes.
    """

    DEFAULT_TAX_YEAR = 2025

    # 2025 Brackets, single filer
    # Source: IRS Rev. Proc. 2024-40
    TAX_SCHEDULES: Dict[int, TaxSchedule] = {
        2025: TaxSchedule(
            standard_deduction=Decimal("15000"),
            ordinary_brackets=_brackets(
                ("0", "0.10"),
                ("11925", "0.12"),
                ("48475", "0.22"),
                ("103350", "0.24"),
                ("197300", "0.32"),
                ("250525", "0.35"),
                ("626350", "0.37"),
            ),
            capital_gains_brackets=_brackets(
                ("0", "0.00"),
                ("48350", "0.15"),
                ("533400", "0.20"),
            ),
        ),
    }

    @staticmethod
    def get_schedule(tax_year: int = DEFAULT_TAX_YEAR) -> TaxSchedule:
        schedule = TaxService.TAX_SCHEDULES.get(tax_year)
        if schedule is None:
            raise ValueError(f"No tax schedule for {tax_year}; available: {sorted(TaxService.TAX_SCHEDULES)}")
        return schedule

    @staticmethod
    def standard_deduction(tax_year: int = DEFAULT_TAX_YEAR) -> Decimal:
        return TaxService.get_schedule(tax_year).standard_deduction

    @staticmethod
    def top_of_bracket(rate: Amount, tax_year: int = DEFAULT_TAX_YEAR) -> Decimal:
        """Upper limit of taxable income for the ordinary bracket taxed at `rate`."""
        brackets = TaxService.get_schedule(tax_year).ordinary_brackets
        rate = to_decimal(rate)
        for i, (_, bracket_rate) in enumerate(brackets[:-1]):
            if bracket_rate == rate:
                return brackets[i + 1][0]
        raise ValueError(f"No bounded ordinary bracket at rate {rate}")

    @staticmethod
    def _bracket_ranges(brackets: Tuple[Tuple[Decimal, Decimal], ...]) -> List[Tuple[Decimal, Decimal, Decimal]]:
        # (lower, cap, rate); cap of the last bracket is infinite
        ranges = []
        for i, (current_min, rate) in enumerate(brackets):
            if i < len(brackets) - 1:
                bracket_cap = brackets[i + 1][0]
            else:
                bracket_cap = Decimal("Infinity")
            ranges.append((current_min, bracket_cap, rate))
        return ranges

    @staticmethod
    def ordinary_income_tax(income: Amount, tax_year: int = DEFAULT_TAX_YEAR) -> Decimal:
        """
        Progressive tax on ordinary income after the standard deduction.
        Each bracket taxes only the slice of income that falls inside it.
        """
        schedule = TaxService.get_schedule(tax_year)
        taxable_income = max(Decimal("0"), to_decimal(income) - schedule.standard_deduction)

        tax = Decimal("0")
        for current_min, bracket_cap, rate in TaxService._bracket_ranges(schedule.ordinary_brackets):
            if taxable_income <= current_min:
                break
            tax += (min(taxable_income, bracket_cap) - current_min) * rate

        logger.debug(f"Ordinary income tax: Income={income}, TaxableIncome={taxable_income}, Tax={tax}")
        return round_currency(tax)

    @staticmethod
    def long_term_capital_gains_tax(gains: Amount, ordinary_income: Amount, tax_year: int = DEFAULT_TAX_YEAR) -> Decimal:
        """
        Capital gains sit ON TOP of ordinary income for bracket determination.

        The gains occupy the slice [taxable ordinary, taxable ordinary + gains]
        of total taxable income; each LTCG bracket taxes its overlap with that
        slice, so gains straddling a threshold are split between two rates.
        """
        gains = to_decimal(gains)
        if gains <= 0:
            return Decimal("0.00")

        schedule = TaxService.get_schedule(tax_year)
        taxable_ordinary = max(Decimal("0"), to_decimal(ordinary_income) - schedule.standard_deduction)
        total_taxable = taxable_ordinary + gains

        tax = Decimal("0")
        for current_min, bracket_cap, rate in TaxService._bracket_ranges(schedule.capital_gains_brackets):
            seg_start = max(taxable_ordinary, current_min)
            seg_end = min(total_taxable, bracket_cap)
            if seg_end > seg_start:
                tax += (seg_end - seg_start) * rate

        logger.debug(f"LTCG tax: CapitalGains={gains}, OrdinaryIncome={ordinary_income}, Tax={tax}")
        return round_currency(tax)

    @staticmethod
    def total_tax(taxable_withdrawal: Amount, tax_deferred_withdrawal: Amount, tax_year: int = DEFAULT_TAX_YEAR) -> Decimal:
        ordinary_tax = TaxService.ordinary_income_tax(tax_deferred_withdrawal, tax_year)
        capital_gains_tax = TaxService.long_term_capital_gains_tax(taxable_withdrawal, tax_deferred_withdrawal, tax_year)
        return ordinary_tax + capital_gains_tax
