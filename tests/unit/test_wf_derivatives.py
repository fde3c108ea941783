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
import rwqmc.testwf as testwf
import rwqmc.wf.func3d as func3d
from rwqmc.configurations.coord import OpenConfigs
from rwqmc.wf.onebody import gaussian_wf, exponential_wf


@pytest.mark.parametrize(
    "func",
    [
        func3d.GaussianFunction(0.4),
        func3d.ExponentialFunction(1.3),
    ],
)
@pytest.mark.parametrize("ndim", [1, 2, 3])
def test_func3d(func, ndim, epsilon=1e-5):
    """
    Ensure that the radial functions correctly compute their gradient and laplacian
    """
    delta = 1e-6
    assert func3d.test_func3d_gradient(func, delta=delta, ndim=ndim) < epsilon
    assert func3d.test_func3d_laplacian(func, delta=delta, ndim=ndim) < epsilon
    for k, v in func3d.test_func3d_pgradient(func, delta=1e-7).items():
        assert v < epsilon, (func, k, v)


def run_tests(wf, epos, epsilon):
    for k, item in testwf.test_updateinternals(wf, epos).items():
        assert item < epsilon, k

    wf.recompute(epos)
    assert testwf.test_mask(wf, 0, epos.electron(0)) < epsilon

    for func in [
        testwf.test_wf_gradient,
        testwf.test_wf_laplacian,
        testwf.test_wf_pgradient,
    ]:
        err = [func(wf, epos, delta) for delta in [1e-4, 1e-5, 1e-6, 1e-7]]
        assert min(err) < epsilon, (func.__name__, err)

    for func in [testwf.test_wf_gradient_value, testwf.test_wf_gradient_laplacian]:
        d = func(wf, epos)
        for k, v in d.items():
            assert v < 1e-10, (k, v)


@pytest.mark.parametrize("ndim", [1, 2, 3])
@pytest.mark.parametrize(
    "make_wf",
    [
        lambda: gaussian_wf(0.4),
        lambda: gaussian_wf(0.7, center=[0.3, -0.2, 0.1]),
        lambda: exponential_wf(1.2),
    ],
)
def test_onebody_wfs(make_wf, ndim, epsilon=1e-5, nconf=10):
    """
    Ensure that the wave function objects are consistent in several situations.
    """
    wf = make_wf()
    if wf.center is not None:
        wf.center = wf.center[:ndim]
    epos = OpenConfigs(np.random.default_rng(ndim).normal(size=(nconf, 3, ndim)))
    run_tests(wf, epos, epsilon)


def test_value_matches_definition():
    wf = gaussian_wf(0.3, center=[1.0, 0.0, 0.0])
    configs = OpenConfigs(np.random.default_rng(0).normal(size=(5, 2, 3)))
    sign, logval = wf.recompute(configs)
    expected = -0.3 * np.sum((configs.configs - [1.0, 0.0, 0.0]) ** 2, axis=(1, 2))
    assert np.all(sign == 1)
    assert np.allclose(logval, expected)
