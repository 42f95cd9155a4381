"""
Line Item Validator

Applies plausibility rules to extracted fuel purchase rows.
Every failing rule adds a reason; any reason rejects the row. Rejected rows
are kept with their reasons for human review, never silently dropped.
"""

import logging
import re
from datetime import date, timedelta
from typing import Callable, Iterable, List, Optional

from fuelex.config.settings import ValidationRules
from fuelex.models.fuel_invoice import (
    ExtractedLineItem,
    ValidatedLineItem,
    ValidationReport,
    Verdict,
)

logger = logging.getLogger(__name__)

ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')

REQUIRED_FIELDS = (
    ('transaction_date', 'transaction date'),
    ('registration', 'registration'),
    ('litres', 'litres'),
    ('cost_per_litre', 'cost per litre'),
    ('total_cost', 'total cost'),
)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a strict YYYY-MM-DD string into a real calendar date"""
    if not value or not ISO_DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


class LineItemValidator:
    """
    Validates ExtractedLineItems against ValidationRules.

    The reference "today" comes from the injected clock, so identical input
    always produces identical verdicts.
    """

    def __init__(self, rules: Optional[ValidationRules] = None, clock: Callable[[], date] = date.today):
        self.rules = rules or ValidationRules()
        self.clock = clock

    def validate(self, item: ExtractedLineItem, anchor_date: Optional[date] = None) -> ValidatedLineItem:
        """
        Validate one line item.

        Args:
            item: Extracted line item
            anchor_date: Invoice date (or external hint) for the window check

        Returns:
            ValidatedLineItem with verdict, reasons and parsed date
        """
        reasons: List[str] = []

        missing = [label for field, label in REQUIRED_FIELDS if getattr(item, field) is None]
        if missing:
            reasons.append(f"Missing required fields: {', '.join(missing)}")

        reasons.extend(self._check_arithmetic(item))
        reasons.extend(self._check_ranges(item))

        parsed_date = None
        if item.transaction_date is not None:
            parsed_date = parse_iso_date(item.transaction_date)
            if parsed_date is None:
                reasons.append(f"Invalid date format: {item.transaction_date!r} (expected YYYY-MM-DD)")
            else:
                reasons.extend(self._check_date(parsed_date, anchor_date))

        verdict = Verdict.REJECTED if reasons else Verdict.ACCEPTED
        logger.debug(
            f"Line {item.line_number} ({item.registration}): {verdict.value}"
            + (f" - {'; '.join(reasons)}" if reasons else "")
        )
        return ValidatedLineItem(item=item, verdict=verdict, reasons=reasons, parsed_date=parsed_date)

    def validate_all(
        self,
        items: Iterable[ExtractedLineItem],
        anchor_date: Optional[date] = None
    ) -> ValidationReport:
        """Validate every item, keeping input order within each partition"""
        report = ValidationReport()
        for item in items:
            result = self.validate(item, anchor_date)
            if result.accepted:
                report.accepted.append(result)
            else:
                report.rejected.append(result)
        return report

    def _check_arithmetic(self, item: ExtractedLineItem) -> List[str]:
        if item.litres is None or item.cost_per_litre is None or item.total_cost is None:
            return []
        expected = item.litres * item.cost_per_litre
        difference = abs(expected - item.total_cost)
        tolerance = max(
            self.rules.arithmetic_abs_tolerance,
            self.rules.arithmetic_rel_tolerance * abs(item.total_cost)
        )
        if difference <= tolerance:
            return []
        symbol = self.rules.currency_symbol
        return [
            f"Math mismatch: {item.litres:.2f}L x {symbol}{item.cost_per_litre:.3f} = "
            f"{symbol}{expected:.2f}, but total is {symbol}{item.total_cost:.2f}"
        ]

    def _check_ranges(self, item: ExtractedLineItem) -> List[str]:
        rules = self.rules
        symbol = rules.currency_symbol
        reasons = []

        if item.cost_per_litre is not None and not (
            rules.min_cost_per_litre <= item.cost_per_litre <= rules.max_cost_per_litre
        ):
            reasons.append(
                f"Unusual cost per litre: {symbol}{item.cost_per_litre:.3f} "
                f"(expected {symbol}{rules.min_cost_per_litre:.2f}-{symbol}{rules.max_cost_per_litre:.2f})"
            )

        if item.litres is not None and not (rules.min_litres <= item.litres <= rules.max_litres):
            reasons.append(
                f"Unusual litres: {item.litres:.2f}L (expected {rules.min_litres:g}-{rules.max_litres:g}L)"
            )

        if item.total_cost is not None and not (rules.min_total_cost <= item.total_cost <= rules.max_total_cost):
            reasons.append(
                f"Unusual total cost: {symbol}{item.total_cost:.2f} "
                f"(expected {symbol}{rules.min_total_cost:.2f}-{symbol}{rules.max_total_cost:.2f})"
            )

        return reasons

    def _check_date(self, parsed: date, anchor_date: Optional[date]) -> List[str]:
        reasons = []
        today = self.clock()

        if parsed > today:
            reasons.append(f"Transaction date {parsed.isoformat()} is in the future")

        earliest = today - timedelta(days=self.rules.max_lookback_days)
        if parsed < earliest:
            reasons.append(
                f"Transaction date {parsed.isoformat()} is more than "
                f"{self.rules.max_lookback_days} days old"
            )

        if anchor_date is not None:
            distance = abs((parsed - anchor_date).days)
            if distance > self.rules.anchor_window_days:
                reasons.append(
                    f"Transaction date {parsed.isoformat()} is {distance} days from the "
                    f"invoice date {anchor_date.isoformat()} (window {self.rules.anchor_window_days} days)"
                )

        return reasons
