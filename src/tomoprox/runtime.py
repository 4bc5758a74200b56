import enum
import warnings

import numpy as np

import tomoprox.info.ptype as tpt
import tomoprox.info.warning as tpw

__all__ = [
    "Width",
    "coerce",
]


@enum.unique
class Width(enum.Enum):
    """
    Machine-dependent floating-point types.
    """

    SINGLE = np.dtype(np.single)
    DOUBLE = np.dtype(np.double)

    def eps(self) -> tpt.Real:
        """
        Machine precision of a floating-point type.

        Returns the difference between 1 and the next smallest representable float larger than 1.
        """
        eps = np.finfo(self.value).eps
        return float(eps)

    @classmethod
    def from_dtype(cls, dtype: tpt.DType) -> "Width":
        """
        Find the precision matching `dtype`.  Raises :py:class:`ValueError` for non-floating types.
        """
        dtype = np.dtype(dtype)
        for w in cls:
            if w.value == dtype:
                return w
        raise ValueError(f"Unsupported floating-point type {dtype}.")


def coerce(arr: tpt.NDArray) -> tpt.NDArray:
    """
    Return `arr` with a supported floating-point dtype.

    Arrays with an unsupported dtype (integer, half, ...) are cast to :py:attr:`Width.DOUBLE`.
    """
    try:
        Width.from_dtype(arr.dtype)
        return arr
    except ValueError:
        msg = f"Casting input with dtype {arr.dtype} to {Width.DOUBLE.value}."
        warnings.warn(msg, tpw.PrecisionWarning)
        return arr.astype(Width.DOUBLE.value)
