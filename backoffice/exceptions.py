from __future__ import annotations

from decimal import Decimal


class VarianceReasonRequired(ValueError):
    """Raised when a count has a variance and no explanation was supplied.

    Nothing has been written when this is raised; the caller asks the user for
    a reason and resubmits.
    """

    def __init__(self, variance: Decimal, message: str = 'Please provide a reason for the variance.') -> None:
        super().__init__(message)
        self.variance = variance
