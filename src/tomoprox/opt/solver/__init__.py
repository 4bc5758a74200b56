from .pds import (
    DualDenoising as DualDenoising,
    TVLeastSquares as TVLeastSquares,
    solve_dual as solve_dual,
    solve_tv as solve_tv,
)
