"""File naming for table storage and validation of date values."""

from __future__ import annotations

import re

TABLE_META_SUFFIX = ".table"
TABLE_META_FILE_PATTERN = r".*\.table$"
TABLE_DATA_SUFFIX = ".data"
TABLE_INDEX_SUFFIX = ".index"

LOWER_BOUND_YEAR = 1970

_DATE_PATTERN = re.compile(r"[0-9]{0,4}-[0-9]{1,2}-[0-9]{1,2}")
_THIRTY_DAY_MONTHS = frozenset({4, 6, 9, 11})


class InvalidDateError(ValueError):
    """Raised when a value is not an acceptable date."""


def table_meta_file(base_dir: str, table_name: str) -> str:
    """Path of the metadata file of a table."""
    return f"{base_dir}/{table_name}{TABLE_META_SUFFIX}"


def index_data_file(base_dir: str, table_name: str, index_name: str) -> str:
    """Path of the data file of an index on a table."""
    return f"{base_dir}/{table_name}-{index_name}{TABLE_INDEX_SUFFIX}"


def _is_leap_year(year: int) -> bool:
    return year % 400 == 0 or (year % 4 == 0 and year % 100 != 0)


class DateUtil:
    """Checks dates against the range [1970-01-01, upper bound] and normalises them."""

    def __init__(self, year: int, month: int, day: int) -> None:
        self.upper_bound = (year, month, day)
        self.lower_bound_year = LOWER_BOUND_YEAR

    def in_range(self, year: int, month: int, day: int) -> bool:
        """Whether the date lies between the lower bound and the upper bound."""
        return (year, month, day) <= self.upper_bound and year >= self.lower_bound_year

    def check_and_format_date(self, text: str) -> str:
        """Validate a ``Y-M-D`` string and return it as ``YYYY-MM-DD``."""
        if not isinstance(text, str) or not _DATE_PATTERN.fullmatch(text):
            raise InvalidDateError(f"not a date: {text!r}")
        year_text, month_text, day_text = text.split("-")
        year = int(year_text) if year_text else 0
        month = int(month_text)
        day = int(day_text)

        max_day = 31
        if month in _THIRTY_DAY_MONTHS:
            max_day = 30
        elif month == 2:
            max_day = 29 if _is_leap_year(year) else 28
        if not 1 <= month <= 12 or not 1 <= day <= max_day:
            raise InvalidDateError(f"not a valid calendar date: {text!r}")
        if not self.in_range(year, month, day):
            raise InvalidDateError(f"date out of range: {text!r}")
        return f"{year:04d}-{month:02d}-{day:02d}"


_GLOBAL_DATE_UTIL = DateUtil(2038, 3, 1)


def global_date_util() -> DateUtil:
    """The shared date checker with an upper bound of 2038-03-01."""
    return _GLOBAL_DATE_UTIL