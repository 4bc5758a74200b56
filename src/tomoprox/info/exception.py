# Custom exceptions used inside tomoprox.


class TomoproxError(Exception):
    """
    Parent class of all errors raised in tomoprox.
    """


class ConfigurationError(TomoproxError, ValueError):
    """
    Use when solver inputs are invalid: bad option values, operator/data dimension mismatch, ...

    Always raised before the first solver iteration.
    """


class NumericalDivergenceError(TomoproxError, ArithmeticError):
    """
    Use when solver iterates stop being finite.
    """

    def __init__(self, msg: str, iteration: int = None):
        super().__init__(msg)
        self.iteration = iteration
