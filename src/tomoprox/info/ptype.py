import collections.abc as cabc
import numbers as nb
import pathlib as plib
import typing as typ

import numpy.typing as npt

import tomoprox.info.deps as tpd

if typ.TYPE_CHECKING:
    import tomoprox.abc.operator as tpo
    import tomoprox.abc.solver as tps

#: Supported dense array types.
NDArray = typ.TypeVar("NDArray", *tpd.supported_array_types())

#: Supported dense array modules.
ArrayModule = typ.TypeVar(
    "ArrayModule",
    *[typ.Literal[_] for _ in tpd.supported_array_modules()],
)

#: Matrix-like objects which can be wrapped into a :py:class:`~tomoprox.abc.LinOp`.
MatrixLike = typ.Any

#: Top-level abstract :py:class:`~tomoprox.abc.Operator` interface exposed to users.
OpT = typ.TypeVar(
    "OpT",
    "tpo.Operator",
    "tpo.ProxFunc",
    "tpo.LinOp",
)

#: :py:class:`~tomoprox.abc.Operator` hierarchy class type.
OpC = typ.Type[OpT]

#: Top-level abstract :py:class:`~tomoprox.abc.Solver` interface exposed to users.
SolverT = typ.TypeVar("SolverT", bound="tps.Solver")

#: :py:class:`~tomoprox.abc.Solver` hierarchy class type.
SolverC = typ.Type[SolverT]

Integer = nb.Integral
Real = nb.Real  #: Alias of :py:class:`numbers.Real`.
DType = npt.DTypeLike  #: :py:attr:`~tomoprox.info.ptype.NDArray` dtype specifier.
NDArrayShape = typ.Union[Integer, tuple[Integer, ...]]  #: :py:attr:`~tomoprox.info.ptype.NDArray` shape specifier.
Path = typ.Union[str, plib.Path]  #: Path-like object.
VarName = typ.Union[str, cabc.Collection[str]]  #: Variable name(s).
Options = cabc.Mapping[str, typ.Any]  #: Option bag, e.g. solver configuration overrides.
