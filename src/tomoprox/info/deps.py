import collections.abc as cabc
import enum
import importlib.util
import types

import dask.array
import numpy
import scipy.sparse

#: Show if CuPy-based backends are available.
CUPY_ENABLED: bool = importlib.util.find_spec("cupy") is not None
if CUPY_ENABLED:
    try:
        import cupy

        cupy.is_available()  # will fail if hardware/drivers/runtime missing
    except Exception:
        CUPY_ENABLED = False


@enum.unique
class NDArrayInfo(enum.Enum):
    """
    Supported dense array backends.
    """

    NUMPY = enum.auto()
    DASK = enum.auto()
    CUPY = enum.auto()

    @classmethod
    def default(cls) -> "NDArrayInfo":
        """Default array backend to use."""
        return cls.NUMPY

    def type(self) -> type:
        """Array type associated to a backend."""
        if self.name == "NUMPY":
            return numpy.ndarray
        elif self.name == "DASK":
            return dask.array.core.Array
        elif self.name == "CUPY":
            return cupy.ndarray if CUPY_ENABLED else type(None)
        else:
            raise ValueError(f"No known array type for {self.name}.")

    @classmethod
    def from_obj(cls, obj) -> "NDArrayInfo":
        """Find array backend associated to `obj`."""
        if obj is not None:
            for ndi in cls:
                if isinstance(obj, ndi.type()):
                    return ndi
        raise ValueError(f"No known array type to match {obj}.")

    def module(self, linalg: bool = False) -> types.ModuleType:
        """
        Python module associated to an array backend.

        Parameters
        ----------
        linalg: bool
            Return the linear-algebra submodule with identical API to :py:mod:`numpy.linalg`.
        """
        if self.name == "NUMPY":
            xp = numpy
            xpl = xp.linalg
        elif self.name == "DASK":
            xp = dask.array
            xpl = xp.linalg
        elif self.name == "CUPY":
            xp = cupy if CUPY_ENABLED else None
            xpl = xp if (xp is None) else xp.linalg
        else:
            raise ValueError(f"No known module(s) for {self.name}.")
        return xpl if linalg else xp


@enum.unique
class SparseArrayInfo(enum.Enum):
    """
    Supported sparse array backends.

    Sparse matrices are only used to define linear operators: iterates are always dense.
    """

    SCIPY_SPARSE = enum.auto()

    @classmethod
    def default(cls) -> "SparseArrayInfo":
        """Default sparse backend to use."""
        return cls.SCIPY_SPARSE

    def type(self) -> tuple[type, ...]:
        """Sparse type(s) associated to a backend."""
        if self.name == "SCIPY_SPARSE":
            # `*matrix` classes descend from `spmatrix`, `*array` classes from `sparray`.
            return (scipy.sparse.spmatrix, scipy.sparse.sparray)
        else:
            raise ValueError(f"No known array type for {self.name}.")

    @classmethod
    def from_obj(cls, obj) -> "SparseArrayInfo":
        """Find sparse backend associated to `obj`."""
        if obj is not None:
            for sai in cls:
                if isinstance(obj, sai.type()):
                    return sai
        raise ValueError(f"No known sparse type to match {obj}.")

    def module(self, linalg: bool = False) -> types.ModuleType:
        """
        Python module associated to a sparse backend.

        Parameters
        ----------
        linalg: bool
            Return the linear-algebra submodule with identical API to :py:mod:`scipy.sparse.linalg`.
        """
        if self.name == "SCIPY_SPARSE":
            xp = scipy.sparse
            xpl = scipy.sparse.linalg
        else:
            raise ValueError(f"No known array module for {self.name}.")
        return xpl if linalg else xp


def supported_array_types() -> cabc.Collection[type]:
    """List of all supported dense array types in current install."""
    data = set()
    for ndi in NDArrayInfo:
        if (ndi != NDArrayInfo.CUPY) or CUPY_ENABLED:
            data.add(ndi.type())
    return tuple(data)


def supported_array_modules() -> cabc.Collection[types.ModuleType]:
    """List of all supported dense array modules in current install."""
    data = set()
    for ndi in NDArrayInfo:
        if (ndi != NDArrayInfo.CUPY) or CUPY_ENABLED:
            data.add(ndi.module())
    return tuple(data)


def is_sparse(obj) -> bool:
    """Test if `obj` is a supported sparse matrix."""
    try:
        SparseArrayInfo.from_obj(obj)
        return True
    except ValueError:
        return False


__all__ = [
    "CUPY_ENABLED",
    "NDArrayInfo",
    "SparseArrayInfo",
    "supported_array_types",
    "supported_array_modules",
    "is_sparse",
]
