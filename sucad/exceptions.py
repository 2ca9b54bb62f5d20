"""Exceptions and warnings raised by the evaluation engine."""


class InvalidDesignError(ValueError):
    """Geometric or mass inputs are non-physical (e.g. b <= 0, AR <= 0, m_bat < 0)."""


class ConvergenceWarning(UserWarning):
    """A crossing or event could not be found within the simulated horizon.

    The affected metric is reported as not available (NaN) instead of raising.
    """
