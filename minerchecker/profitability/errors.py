"""
Exceptions raised by the profitability pipeline.

Only run-level failures are exceptions. Per-machine problems (bad unit, no
estimate from any tier) are counted in the run summary instead.
"""


class ProfitabilityError(Exception):
    """Base class for profitability pipeline errors."""


class PriceUnavailableError(ProfitabilityError):
    """Every reference-price provider failed and no stored price was usable."""

    def __init__(self, asset, last_error=None):
        self.asset = asset
        self.last_error = last_error
        msg = f"{asset}/USD price unavailable"
        if last_error is not None:
            msg += f" (last error: {last_error})"
        super().__init__(msg)


class RunAbortedError(ProfitabilityError):
    """A fatal phase stopped the run; summary holds the counts reached so far."""

    def __init__(self, phase, summary=None, cause=None):
        self.phase = phase
        self.summary = summary
        self.cause = cause
        super().__init__(f"Profitability run aborted during '{phase}': {cause}")
