"""
Error taxonomy for portfolio analytics.
All errors are raised synchronously at the point of computation and never retried.
"""


class AnalysisError(Exception):
    """Base class for analysis failures."""
    pass


class InsufficientDataError(AnalysisError):
    """Raised when a window or regression needs more observations than supplied."""
    pass


class PortfolioError(AnalysisError):
    """Raised when a portfolio definition is invalid."""
    pass


class WeightSumError(PortfolioError):
    """Raised when portfolio weights do not sum to 1 within tolerance."""
    pass


class DegenerateInputError(AnalysisError):
    """Raised when a ratio statistic meets a zero-variance input."""
    pass


class AlignmentError(AnalysisError):
    """Raised when series for a multi-series statistic have mismatched dates."""
    pass


class InvalidSeriesError(AnalysisError):
    """Raised when a return or price series breaks its ordering or value invariants."""
    pass
