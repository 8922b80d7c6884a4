"""
Error types raised by the spatial statistics core.

All derive from ValueError, so code that already guards analysis calls
with ``except ValueError`` keeps working.
"""


class SpatialAnalysisError(ValueError):
    """Base class for failures of a spatial statistic."""


class ConfigurationError(SpatialAnalysisError):
    """Invalid parameter: k out of range, unknown weight style, mode or alternative."""


class ZeroNeighborError(SpatialAnalysisError):
    """An entity has no neighbours and the zero policy is strict."""

    def __init__(self, index, label=None):
        self.index = index
        self.label = label
        who = f"{index}" if label is None else f"{index} ({label!r})"
        super().__init__(
            f"Entity {who} has no neighbours. "
            f"Use zero_policy=True to keep it with an all-zero weight row."
        )


class UndefinedStatisticError(SpatialAnalysisError):
    """The statistic cannot be computed for this input (e.g. zero variance)."""


class DimensionMismatchError(SpatialAnalysisError):
    """Length of a value vector does not match the number of entities."""

    def __init__(self, expected, got, what="values"):
        self.expected = expected
        self.got = got
        super().__init__(
            f"Length of {what} ({got}) does not match number of entities ({expected})"
        )
