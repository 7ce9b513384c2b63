"""
Cold/fresh item classification.

Fresh and refrigerated items are labeled with a "KF", "F " or "B " prefix on
their code or name; everything else is ambient soda/snack stock. The pattern
is anchored and requires whitespace after a single letter so words like
"Frozen" or "Bagels" stay out of the cold segment.
"""

import re

from .schemas import Segment, StagedRecord

COLD_PREFIX = re.compile(r"^(?:KF|F\s|B\s)", re.IGNORECASE)


def is_cold_item(item_number: str, item_name: str) -> bool:
    return bool(
        COLD_PREFIX.match(item_number or "") or COLD_PREFIX.match(item_name or "")
    )


def record_segment(record: StagedRecord) -> Segment:
    if is_cold_item(record.item_number, record.item_name):
        return Segment.COLD
    return Segment.SODA_SNACK


def matches_segment(record: StagedRecord, segment: Segment) -> bool:
    if segment == Segment.ALL:
        return True
    return record_segment(record) == segment
