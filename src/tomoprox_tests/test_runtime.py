import numpy as np
import pytest

import tomoprox.info.warning as tpw
import tomoprox.runtime as tprt


class TestWidth:
    def test_eps(self, width):
        assert width.eps() == np.finfo(width.value).eps

    @pytest.mark.parametrize(
        ["dtype", "width"],
        [
            [np.float32, tprt.Width.SINGLE],
            [np.float64, tprt.Width.DOUBLE],
        ],
    )
    def test_from_dtype(self, dtype, width):
        assert tprt.Width.from_dtype(dtype) is width

    def test_from_dtype_invalid(self):
        with pytest.raises(ValueError):
            tprt.Width.from_dtype(np.int32)


class TestCoerce:
    def test_supported(self, width, xp):
        x = xp.ones(3, dtype=width.value)
        assert tprt.coerce(x) is x

    @pytest.mark.parametrize("dtype", [np.int64, np.float16])
    def test_cast(self, dtype):
        x = np.ones(3, dtype=dtype)
        with pytest.warns(tpw.PrecisionWarning):
            y = tprt.coerce(x)
        assert y.dtype == tprt.Width.DOUBLE.value
