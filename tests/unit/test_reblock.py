# MIT License
#
# Copyright (c) 2019-2024 The PyQMC Developers
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.

import numpy as np
import pandas as pd
import pytest
import scipy.signal
from rwqmc import reblock


def correlated_frame(n=2**14, phi=0.9, seed=10):
    rng = np.random.default_rng(seed)
    white = rng.normal(size=n)
    correlated = scipy.signal.lfilter([1.0], [1.0, -phi], rng.normal(size=n))
    return pd.DataFrame({"white": white, "correlated": correlated}), 1.0 / ((1 - phi) * np.sqrt(n))


def test_reblock_dataframe():
    df = pd.DataFrame({"a": np.arange(100.0), "b": np.ones(100)})
    rb = reblock.reblock(df, 10)
    assert len(rb) == 10
    assert np.allclose(rb["a"], np.arange(10) * 10 + 4.5)
    assert np.allclose(rb["b"], 1.0)


def test_reblock_weighted_array():
    data = np.arange(8.0)[:, np.newaxis] * np.array([1.0, 2.0])
    weights = np.array([1, 0, 1, 0, 1, 0, 1, 0], dtype=float)
    rb = reblock.reblock(data, 4, weights)
    assert rb.shape == (4, 2)
    assert np.allclose(rb[:, 0], [0, 2, 4, 6])
    assert np.allclose(rb[:, 1], [0, 4, 8, 12])


def test_reblock_series_and_bad_type():
    s = pd.Series(np.arange(6.0), name="x")
    rb = reblock.reblock(s, 3)
    assert rb.name == "x"
    assert np.allclose(rb.values, [0.5, 2.5, 4.5])
    with pytest.raises(TypeError):
        reblock.reblock([1, 2, 3], 2)


def test_reblock_summary():
    df, true_err = correlated_frame()
    summary = reblock.reblock_summary(df["correlated"], nblocks=(32, 64))
    assert list(summary["nblocks"]) == [32, 64]
    for err in summary["standard error"]:
        assert 0.6 < err / true_err < 1.5


def test_opt_block():
    df, true_err = correlated_frame()
    levels = reblock.opt_block(df)
    assert np.all(np.isfinite(levels))
    assert levels[1] > levels[0]

    summary = reblock.optimally_reblocked(df)
    assert 0.6 < summary.loc["correlated", "standard error"] / true_err < 1.5
    assert summary.loc["white", "standard error"] < summary.loc["correlated", "standard error"]


def test_reblock_by2():
    df = pd.DataFrame({"x": np.arange(9.0)})
    rb = reblock.reblock_by2(df, 2)
    assert np.allclose(rb["x"].values, [1.5, 5.5])
