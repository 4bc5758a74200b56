import math
import warnings

import numpy as np
import scipy.sparse as sps
import scipy.sparse.linalg as spsl

import tomoprox.abc as tpa
import tomoprox.info.deps as tpd
import tomoprox.info.exception as tpe
import tomoprox.info.ptype as tpt
import tomoprox.info.warning as tpw
import tomoprox.runtime as tprt

__all__ = [
    "ExplicitLinOp",
    "FiniteDifference",
    "IdentityOp",
    "as_linop",
    "from_sciop",
]


def _spectral_norm(mat) -> float:
    # Largest singular value, obtained once from NumPy/SciPy.
    if tpd.is_sparse(mat) or isinstance(mat, spsl.LinearOperator):
        if min(mat.shape) > 1:
            s = spsl.svds(mat, k=1, return_singular_vectors=False)
            return float(s.max())
        mat = mat.toarray() if tpd.is_sparse(mat) else mat @ np.eye(mat.shape[1])
    return float(np.linalg.norm(np.asarray(mat), ord=2))


class ExplicitLinOp(tpa.LinOp):
    r"""
    Linear operator defined by an explicit (dense or sparse) matrix :math:`\mathbf{A} \in \mathbb{R}^{M \times N}`.
    """

    def __init__(self, mat: tpt.MatrixLike, lipschitz: tpt.Real = None):
        r"""
        Parameters
        ----------
        mat: NDArray, :py:class:`scipy.sparse.spmatrix`, :py:class:`scipy.sparse.sparray`
            (M, N) matrix.
        lipschitz: Real
            Estimate of :math:`\Vert\mathbf{A}\Vert_{2}`.  If unspecified, the spectral norm is computed once via
            :py:func:`numpy.linalg.norm` (dense) or :py:func:`scipy.sparse.linalg.svds` (sparse).
        """
        if mat.ndim != 2:
            raise tpe.ConfigurationError(f"mat: expected 2D matrix, got shape {mat.shape}.")
        super().__init__(dim_shape=mat.shape[1], codim_shape=mat.shape[0])

        if tpd.is_sparse(mat):
            mat = mat.tocsr()
        self._mat = mat
        self.lipschitz = _spectral_norm(mat) if (lipschitz is None) else float(lipschitz)

    @property
    def mat(self) -> tpt.MatrixLike:
        return self._mat

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        if arr.ndim == 1:
            return self._mat @ arr
        else:
            return (self._mat @ arr.T).T

    def adjoint(self, arr: tpt.NDArray) -> tpt.NDArray:
        if arr.ndim == 1:
            return self._mat.T @ arr
        else:
            return (self._mat.T @ arr.T).T


class IdentityOp(tpa.LinOp):
    """
    Identity operator.
    """

    def __init__(self, dim_shape: tpt.NDArrayShape):
        super().__init__(
            dim_shape=dim_shape,
            codim_shape=dim_shape,
        )
        self.lipschitz = 1.0

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        return arr

    def adjoint(self, arr: tpt.NDArray) -> tpt.NDArray:
        return arr


class FiniteDifference(ExplicitLinOp):
    r"""
    1D forward finite-difference operator :math:`(\mathbf{D}\mathbf{x})_{i} = x_{i+1} - x_{i}`, of size
    :math:`(N-1) \times N`.

    The operator norm is known in closed form: :math:`\Vert\mathbf{D}\Vert_{2} = 2\cos(\pi / 2N)`.
    """

    def __init__(self, dim: tpt.Integer):
        try:
            assert int(dim) >= 2
            dim = int(dim)
        except Exception:
            raise tpe.ConfigurationError(f"dim: expected integer >= 2, got {dim}.")

        D = sps.diags(
            [-np.ones(dim - 1), np.ones(dim - 1)],
            offsets=[0, 1],
            shape=(dim - 1, dim),
            dtype=tprt.Width.DOUBLE.value,
        )
        super().__init__(mat=D, lipschitz=2 * math.cos(math.pi / (2 * dim)))


class _SciPyLinOp(tpa.LinOp):
    def __init__(self, sp_op: spsl.LinearOperator, lipschitz: tpt.Real = None):
        N, M = sp_op.shape
        super().__init__(dim_shape=M, codim_shape=N)
        self._sp_op = sp_op
        self.lipschitz = _spectral_norm(sp_op) if (lipschitz is None) else float(lipschitz)

    def apply(self, arr: tpt.NDArray) -> tpt.NDArray:
        if arr.ndim == 1:
            return self._sp_op.matvec(arr)
        else:
            return self._sp_op.matmat(arr.T).T

    def adjoint(self, arr: tpt.NDArray) -> tpt.NDArray:
        if arr.ndim == 1:
            return self._sp_op.rmatvec(arr)
        else:
            return self._sp_op.rmatmat(arr.T).T


def from_sciop(sp_op: spsl.LinearOperator, lipschitz: tpt.Real = None) -> tpa.LinOp:
    r"""
    Wrap a :py:class:`~scipy.sparse.linalg.LinearOperator` as a :py:class:`~tomoprox.abc.LinOp`.

    Parameters
    ----------
    sp_op: ~scipy.sparse.linalg.LinearOperator
        (N, M) linear operator compliant with SciPy's interface.  Must implement ``rmatvec()``.
    lipschitz: Real
        Estimate of the operator norm.  If unspecified, computed once via :py:func:`scipy.sparse.linalg.svds`.

    Returns
    -------
    op: LinOp
        Linear operator with dim_shape (M,) and codim_shape (N,).
    """
    if sp_op.dtype not in [_.value for _ in tprt.Width]:
        warnings.warn(
            "Computation may not be performed at the requested precision.",
            tpw.PrecisionWarning,
        )
    return _SciPyLinOp(sp_op, lipschitz)


def as_linop(obj, lipschitz: tpt.Real = None) -> tpa.LinOp:
    """
    Interpret `obj` as a :py:class:`~tomoprox.abc.LinOp`.

    Parameters
    ----------
    obj: LinOp, NDArray, sparse matrix, :py:class:`~scipy.sparse.linalg.LinearOperator`
        Object to convert.  LinOps are returned unchanged.
    lipschitz: Real
        Operator norm estimate used for matrix-like inputs.  (Ignored for LinOps.)
    """
    if isinstance(obj, tpa.LinOp):
        return obj
    elif isinstance(obj, spsl.LinearOperator):
        return from_sciop(obj, lipschitz)
    elif tpd.is_sparse(obj) or isinstance(obj, np.ndarray):
        return ExplicitLinOp(obj, lipschitz)
    else:
        raise tpe.ConfigurationError(f"Cannot interpret object of type {type(obj)} as a linear operator.")
