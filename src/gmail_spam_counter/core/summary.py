"""Plain-text day-of-week summary of a date histogram."""

from __future__ import annotations

from datetime import date

from gmail_spam_counter.core.models import DateHistogram


def summary_lines(histogram: DateHistogram, cutoff_date: date) -> list[str]:
    """Render one ``<Dow> <YYYY-MM-DD> <count>`` line per date plus a total.

    Dates are listed in ascending order. A blank line separates dates before
    ``cutoff_date`` from those on or after it.
    """
    if not histogram:
        return ["No spam messages to summarize."]

    cutoff = cutoff_date.strftime("%Y-%m-%d")
    lines: list[str] = []
    total = 0
    previous_before_cutoff: bool | None = None

    for date_str in sorted(histogram):
        before_cutoff = date_str < cutoff
        if previous_before_cutoff and not before_cutoff:
            lines.append("")
        previous_before_cutoff = before_cutoff

        count = histogram[date_str]
        total += count
        day_of_week = date.fromisoformat(date_str).strftime("%a")
        lines.append(f"{day_of_week} {date_str} {count}")

    lines.append(f"Total: {total}")
    return lines
