"""Exception hierarchy for the screening funnel.

Only ``UniverseLoadError`` aborts a run. Every other error is caught at the
instrument or candidate boundary, logged, and recorded as a skip or failure.
"""


class FunnelError(Exception):
    """Base exception class for all funnel errors."""


class ConfigError(FunnelError):
    """Invalid or unreadable configuration."""


class DataError(FunnelError):
    """Candle data is malformed or unavailable."""


class InsufficientDataError(DataError):
    """Not enough bars to evaluate an instrument.

    Attributes:
        symbol: Instrument symbol.
        timeframe: Timeframe code that fell short (e.g. "1D").
        have: Number of bars available.
        need: Number of bars required.
    """

    def __init__(self, symbol: str, timeframe: str, have: int, need: int):
        super().__init__(
            f"[{symbol}] Insufficient {timeframe} history: have {have}, need {need}"
        )
        self.symbol = symbol
        self.timeframe = timeframe
        self.have = have
        self.need = need


class UniverseLoadError(DataError):
    """The instrument universe could not be loaded. Fatal for the run."""


class IndicatorError(FunnelError):
    """An indicator produced an unusable value."""


class JudgeError(FunnelError):
    """The AI judge could not produce a verdict.

    Attributes:
        reason: Short description of the failure.
    """

    def __init__(self, reason: str):
        super().__init__(f"AI judge error: {reason}")
        self.reason = reason


class JudgeTimeoutError(JudgeError):
    """The AI judge did not answer within the configured timeout."""


class JudgeResponseError(JudgeError):
    """The AI judge answered with something that is not a verdict object."""


class StageOrderError(FunnelError):
    """A stage read a field group that no upstream stage has written,
    or tried to overwrite a write-once field.

    Attributes:
        stage: Field group involved (e.g. "setup").
        detail: What was missing or reassigned.
    """

    def __init__(self, stage: str, detail: str):
        super().__init__(f"Stage order violated [{stage}]: {detail}")
        self.stage = stage
        self.detail = detail
