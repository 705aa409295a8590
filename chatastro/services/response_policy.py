"""
Response Date Policy

The authoritative current date is given to the model as structured context.
Whatever stale year still slips through is rewritten by a small ordered
rule table (pattern -> replacement) applied once to every generated reply.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Pattern, Tuple


def _stale_year_rules(current_year: int) -> List[Tuple[Pattern[str], str]]:
    year = str(current_year)
    rules: List[Tuple[Pattern[str], str]] = []
    if current_year > 2024:
        rules += [
            (re.compile(r"in the year twenty[- ]?twenty[- ]?(?:three|four)", re.IGNORECASE), f"in the year {year}"),
            (re.compile(r"twenty[- ]?twenty[- ]?(?:three|four)", re.IGNORECASE), f"twenty {year[-2:]}"),
        ]
    for stale in (2023, 2024):
        if stale >= current_year:
            continue
        rules.append((re.compile(rf"\b{stale}\b"), year))
    return rules


@dataclass
class ResponsePolicy:
    """
    Date handling for generated replies.

    Args:
        current_year: The year the model must treat as "now"
        today: Calendar date rendered into prompts; defaults to today
    """

    current_year: int
    today: Optional[date] = None
    rules: List[Tuple[Pattern[str], str]] = field(default_factory=list)

    def __post_init__(self):
        if self.today is None:
            self.today = date.today()
        if not self.rules:
            self.rules = _stale_year_rules(self.current_year)

    @classmethod
    def from_override(cls, year_override: Optional[int], today: Optional[date] = None) -> "ResponsePolicy":
        today = today or date.today()
        return cls(current_year=year_override or today.year, today=today)

    def year_directive(self) -> str:
        year = self.current_year
        return (
            f'If the user asks what the current or present year is, answer "{year}". '
            f"Treat {year} as the current year and do not mention 2023 or 2024 "
            "unless the user asks about the past."
        )

    def date_header(self) -> str:
        return "\n".join([
            "TODAY'S DATE INFO:",
            f"- Current Year: {self.current_year}",
            f"- Current Month: {self.today.strftime('%B')}",
            f"- {self.year_directive()}",
        ])

    def post_filter(self, text: str) -> str:
        for pattern, replacement in self.rules:
            text = pattern.sub(replacement, text)
        return text
