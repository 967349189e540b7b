"""Cron expression data type for reelsync configuration.

This module provides the CronExpression dataclass used for the sweep
schedule, validated with croniter.
"""

from dataclasses import dataclass, field
from datetime import datetime

from croniter import croniter

_ALIASES: dict[str, str] = {
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
    "@daily": "0 0 * * *",
    "@weekly": "0 0 * * 0",
    "@monthly": "0 0 1 * *",
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
}


@dataclass
class CronExpression:
    """A validated cron expression split into its trigger fields.

    Accepts the standard five fields (minute hour day month day-of-week),
    an optional sixth "second" field, and the usual aliases such as
    ``@hourly``. A seventh (year) field is rejected.

    Attributes:
        cron_str: The original cron expression string.
        minute: Minute field.
        hour: Hour field.
        day: Day-of-month field.
        month: Month field.
        day_of_week: Day-of-week field.
        second: Second field, or None for five-field expressions.
    """

    cron_str: str = field(repr=False, hash=False, compare=False)
    _itr: croniter = field(init=False, repr=False, hash=False, compare=False)

    minute: str = field(init=False)
    hour: str = field(init=False)
    day: str = field(init=False)
    month: str = field(init=False)
    day_of_week: str = field(init=False)
    second: str | None = field(init=False)

    def __post_init__(self):
        expanded = _ALIASES.get(self.cron_str.strip().lower(), self.cron_str)
        fields = expanded.split()
        if len(fields) == 7:
            raise ValueError(
                f"Invalid cron expression: year value not allowed (got {fields[6]})"
            )
        if len(fields) not in (5, 6):
            raise ValueError(f"Invalid cron expression: {self.cron_str}")

        try:
            self._itr = croniter(expanded)
        except (ValueError, KeyError) as e:
            raise ValueError(f"Invalid cron expression: {self.cron_str}") from e

        self.minute, self.hour, self.day, self.month, self.day_of_week = fields[:5]
        self.second = fields[5] if len(fields) == 6 else None

    def next(self, start_time: datetime) -> datetime:
        """Return the first matching datetime strictly after ``start_time``."""
        return self._itr.get_next(datetime, start_time=start_time)  # type: ignore

    def __str__(self) -> str:
        return self.cron_str
