"""
Reporting period value type.

Periods are calendar quarters labelled "Q3 2025". next() wraps Q4 into Q1 of
the following year; previous() wraps the other way.
"""

import re
from dataclasses import dataclass
from datetime import datetime

from riskregister.errors import ValidationError

_LABEL = re.compile(r"^\s*Q([1-4])\s*[- ]?\s*(\d{4})\s*$", re.IGNORECASE)


@dataclass(frozen=True, order=True)
class Period:
    year: int
    quarter: int

    def __post_init__(self):
        if not 1 <= self.quarter <= 4:
            raise ValidationError("quarter must be 1-4", field="quarter", details={"quarter": self.quarter})
        if not 1900 <= self.year <= 9999:
            raise ValidationError("year out of range", field="year", details={"year": self.year})

    def __str__(self) -> str:
        return f"Q{self.quarter} {self.year}"

    @classmethod
    def parse(cls, label: str) -> "Period":
        match = _LABEL.match(label or "")
        if not match:
            raise ValidationError(
                f"period must look like 'Q1 2025', got {label!r}",
                field="period",
            )
        return cls(year=int(match.group(2)), quarter=int(match.group(1)))

    @classmethod
    def containing(cls, moment: datetime) -> "Period":
        return cls(year=moment.year, quarter=(moment.month - 1) // 3 + 1)

    def next(self) -> "Period":
        if self.quarter == 4:
            return Period(self.year + 1, 1)
        return Period(self.year, self.quarter + 1)

    def previous(self) -> "Period":
        if self.quarter == 1:
            return Period(self.year - 1, 4)
        return Period(self.year, self.quarter - 1)

    def bounds(self) -> tuple[datetime, datetime]:
        """[start, end) of the quarter as naive UTC datetimes."""
        start = datetime(self.year, 3 * (self.quarter - 1) + 1, 1)
        following = self.next()
        return start, datetime(following.year, 3 * (following.quarter - 1) + 1, 1)
