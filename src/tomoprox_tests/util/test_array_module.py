import dask.array as da
import numpy as np
import pytest

import tomoprox.util as tpu


class TestGetArrayModule:
    def test_array(self, xp):
        x = xp.arange(5)
        assert tpu.get_array_module(x) is xp

    @pytest.mark.parametrize(
        ["obj", "fallback", "fail"],
        [
            [None, None, True],
            [None, np, False],
            [1, None, True],
            [1, np, False],
            [[1.0, 2.0], None, True],
            [[1.0, 2.0], np, False],
        ],
    )
    def test_fallback(self, obj, fallback, fail):
        # Non-array inputs: either fail or return the fallback.
        if not fail:
            assert tpu.get_array_module(obj, fallback) is fallback
        else:
            with pytest.raises(ValueError):
                assert tpu.get_array_module(obj, fallback)


class TestCompute:
    @pytest.fixture(
        params=[
            1,
            [1, 2, 3],
            np.arange(5),
            da.arange(5),
        ]
    )
    def single_input(self, request):
        return request.param

    def equal(self, x, y):
        if any(type(_) in [np.ndarray, da.core.Array] for _ in [x, y]):
            return np.allclose(x, y)
        else:
            return x == y

    def test_single_inputs(self, single_input):
        cargs = tpu.compute(single_input)
        assert self.equal(cargs, single_input)

    def test_multi_inputs(self):
        cargs = tpu.compute(1, np.arange(3), da.arange(3))
        assert len(cargs) == 3
        assert isinstance(cargs[2], np.ndarray)

    def test_persist(self):
        y = tpu.compute(da.arange(5), mode="persist")
        assert isinstance(y, da.core.Array)

    def test_invalid_mode(self):
        with pytest.raises(ValueError):
            tpu.compute(1, mode="magic")


class TestToNumpy:
    def test_backend(self, xp):
        x = xp.arange(4)
        y = tpu.to_NUMPY(x)
        assert isinstance(y, np.ndarray)
        assert np.array_equal(y, np.arange(4))


class TestToFloat:
    @pytest.mark.parametrize("x", [2, 2.0, np.float32(2), np.array(2.0), da.from_array(np.array(2.0))])
    def test_value(self, x):
        y = tpu.to_float(x)
        assert isinstance(y, float) and (y == 2.0)
