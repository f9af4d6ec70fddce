"""
errors.py

Exception types raised by the loan calculators.

Only malformed input raises. An allocation that cannot satisfy its
constraints is returned as a normal result with feasible=False.
"""


class AllocationError(ValueError):
    """Base class for every error raised by the engine."""


class InvalidInput(AllocationError):
    """Request data is malformed or outside its domain."""


class InvalidTerm(InvalidInput):
    """Amortization term is zero or negative."""

    def __init__(self, term_months):
        super().__init__(f"term_months must be positive, got {term_months}")
        self.term_months = term_months
