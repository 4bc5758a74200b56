# Custom warnings used inside tomoprox.


class TomoproxWarning(UserWarning):
    """
    Parent class of all warnings raised in tomoprox.
    """


class AutoInferenceWarning(TomoproxWarning):
    """
    Use when a quantity was auto-inferenced with possible caveats.
    """


class PrecisionWarning(TomoproxWarning):
    """
    Use for precision-related warnings.
    """
