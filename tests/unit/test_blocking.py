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
import pytest
import scipy.signal
from rwqmc.observables.blocking import BlockAccumulator, block_error


def ar1(phi, n, seed):
    """x_t = phi x_{t-1} + eps_t with unit normal eps; variance of the mean is 1/(n (1-phi)^2) for large n."""
    eps = np.random.default_rng(seed).normal(size=n)
    return scipy.signal.lfilter([1.0], [1.0, -phi], eps)


def block_means(series, blocklength):
    means = []
    acc = BlockAccumulator()
    for chunk in series.reshape(-1, blocklength):
        acc.add({"x": chunk}, np.ones(blocklength))
        m, _, _, _ = acc.finish()
        means.append(m["x"])
    return np.asarray(means)


def test_ar1_block_error():
    phi = 0.9
    n = 2**16
    x = ar1(phi, n, seed=42)
    true_err = 1.0 / ((1 - phi) * np.sqrt(n))

    mean, err = block_error(block_means(x, 512))
    assert 0.7 < err / true_err < 1.4, (err, true_err)
    assert abs(mean) < 5 * true_err

    # single-step blocks ignore the correlation and underestimate the error
    _, naive_err = block_error(block_means(x, 1))
    assert naive_err < 0.5 * true_err


def test_weighted_mean_variance():
    rng = np.random.default_rng(1)
    x = rng.normal(size=50)
    w = rng.uniform(0.5, 1.5, size=50)
    acc = BlockAccumulator()
    acc.add({"x": x, "v": np.stack([x, 2 * x], axis=1)}, w)
    mean = acc.mean()
    var = acc.variance()
    avg = np.average(x, weights=w)
    assert np.isclose(mean["x"], avg)
    assert np.allclose(mean["v"], [avg, 2 * avg])
    assert np.isclose(var["x"], np.average((x - avg) ** 2, weights=w))
    assert "v" not in var
    assert np.isclose(acc.weight, np.sum(w))
    assert acc.nsamples == 50


def test_merge_equals_single_buffer():
    rng = np.random.default_rng(2)
    x = rng.normal(size=(4, 30))
    w = rng.uniform(size=(4, 30))

    single = BlockAccumulator()
    for xi, wi in zip(x, w):
        single.add({"x": xi}, wi)

    left, right = BlockAccumulator(), BlockAccumulator()
    for xi, wi in zip(x, w):
        left.add({"x": xi[:10]}, wi[:10])
        right.add({"x": xi[10:]}, wi[10:])
    merged = BlockAccumulator().merge(left).merge(right)

    assert np.isclose(merged.mean()["x"], single.mean()["x"])
    assert np.isclose(merged.variance()["x"], single.variance()["x"])
    assert merged.nsamples == single.nsamples


def test_finish_resets():
    acc = BlockAccumulator()
    acc.add({"x": np.ones(3)}, np.ones(3))
    means, variances, weight, nsamples = acc.finish()
    assert means["x"] == 1.0
    assert weight == 3.0
    assert nsamples == 3
    assert acc.sums == {}
    assert acc.weight == 0.0


def test_block_error_needs_two_blocks():
    with pytest.raises(ValueError):
        block_error(np.ones(1))


def test_block_error_weights():
    means = np.array([1.0, 2.0, 3.0, 4.0])
    mean, err = block_error(means, weights=[1, 1, 1, 1])
    assert np.isclose(mean, 2.5)
    assert np.isclose(err, np.std(means, ddof=1) / 2)
    mean, _ = block_error(means, weights=[0, 1, 1, 0])
    assert np.isclose(mean, 2.5)


def test_nonfinite_walker_skipped():
    """A walker with a non-finite value is left out of every observable for that step."""
    acc = BlockAccumulator()
    total = np.array([1.0, np.nan, 3.0])
    vec = np.array([[1.0, 1.0], [2.0, 2.0], [3.0, np.inf]])
    acc.add({"total": total, "vec": vec}, np.ones(3))
    acc.add({"total": np.array([2.0, 2.0, 2.0]), "vec": np.ones((3, 2))}, np.array([1.0, np.nan, 1.0]))
    assert acc.nskipped == 3
    assert acc.nsamples == 3
    means, variances, weight, nsamples = acc.finish()
    assert weight == 3.0
    assert np.isclose(means["total"], 5.0 / 3)
    assert np.allclose(means["vec"], [1.0, 1.0])
    assert np.isfinite(variances["total"])
    assert acc.nskipped == 0


def test_empty_add():
    acc = BlockAccumulator()
    acc.add({"total": np.zeros(0), "vec": np.zeros((0, 2))}, np.zeros(0))
    assert acc.nsamples == 0 and acc.nskipped == 0
