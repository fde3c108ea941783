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

import copy
import numpy as np
import pytest
from rwqmc.configurations.coord import OpenConfigs
from rwqmc.method.metropolis import limdrift, metropolis_step, transition_ratio
from rwqmc.method.mc import vmc
from rwqmc.rng import RandomSource
from rwqmc.wf.onebody import gaussian_wf


class OddWF:
    r"""
    :math:`\Psi = \prod_i x_i e^{-a r_i^2}`, which has a node wherever a particle's first
    coordinate is zero. With a = 1/2 it is the first excited state of the 1D oscillator.
    """

    def __init__(self, a=0.5):
        self.a = a
        self.parameters = {}
        self.iscomplex = False
        self.dtype = float

    def _sign_log(self, pos):
        with np.errstate(divide="ignore"):
            return np.sign(pos[..., 0]), np.log(np.abs(pos[..., 0])) - self.a * np.sum(pos**2, axis=-1)

    def recompute(self, configs):
        self._sign, self._log = self._sign_log(configs.configs)
        return self.value()

    def value(self):
        return np.prod(self._sign, axis=1), np.sum(self._log, axis=1)

    def testvalue(self, e, epos, mask=None):
        if mask is None:
            mask = np.ones(self._log.shape[0], dtype=bool)
        s, l = self._sign_log(epos.configs[mask])
        with np.errstate(invalid="ignore"):
            ratio = s * self._sign[mask, e] * np.exp(l - self._log[mask, e])
        return ratio, np.stack([s, l])

    def gradient(self, e, epos):
        pos = epos.configs
        g = -2 * self.a * pos
        with np.errstate(divide="ignore"):
            g[:, 0] += 1.0 / pos[:, 0]
        return g.T

    def gradient_value(self, e, epos):
        ratio, saved = self.testvalue(e, epos)
        return self.gradient(e, epos), ratio, saved

    def laplacian(self, e, epos):
        pos = epos.configs
        ndim = pos.shape[-1]
        a = self.a
        return 4 * a**2 * np.sum(pos**2, axis=-1) - 2 * a * ndim - 4 * a

    def gradient_laplacian(self, e, epos):
        return self.gradient(e, epos), self.laplacian(e, epos)

    def updateinternals(self, e, epos, configs, mask=None, saved_values=None):
        if mask is None:
            mask = np.ones(self._log.shape[0], dtype=bool)
        if saved_values is None:
            s, l = self._sign_log(epos.configs[mask])
        else:
            s, l = saved_values[0][mask], saved_values[1][mask]
        self._sign[mask, e] = s
        self._log[mask, e] = l

    def pgradient(self):
        return {}


class ScaledRatioWF:
    """Wraps a wave function and multiplies every proposed ratio by factor."""

    def __init__(self, wf, factor):
        self.wf = wf
        self.factor = factor

    def __getattr__(self, name):
        return getattr(self.wf, name)

    def gradient_value(self, e, epos):
        g, ratio, saved = self.wf.gradient_value(e, epos)
        return g, ratio * self.factor, saved


def test_limdrift():
    g = np.array([[3.0, 4.0], [0.3, 0.4], [np.nan, 1.0], [np.inf, 0.0]])
    lim = limdrift(g, cutoff=1.0)
    assert np.allclose(lim[0], [0.6, 0.8])
    assert np.allclose(lim[1], [0.3, 0.4])
    assert np.all(lim[2:] == 0)


def test_transition_ratio_without_drift():
    gauss = np.random.randn(10, 3)
    zero = np.zeros((10, 3))
    assert np.allclose(transition_ratio(gauss, zero, zero, 0.3), 1.0)


def test_transition_ratio_reverse():
    """Forward and reverse ratios of the same pair of points multiply to one."""
    rng = np.random.default_rng(1)
    tstep = 0.2
    x, y = rng.normal(size=(2, 6, 3))
    vx, vy = rng.normal(size=(2, 6, 3))
    forward_gauss = y - x - tstep * vx
    reverse_gauss = x - y - tstep * vy
    forward = transition_ratio(forward_gauss, vx, vy, tstep)
    reverse = transition_ratio(reverse_gauss, vy, vx, tstep)
    assert np.allclose(forward * reverse, 1.0)


@pytest.mark.parametrize("move", ["drift", "gaussian"])
def test_detailed_balance_1d_gaussian(move):
    """|psi|^2 = exp(-2 alpha x^2) has <x^2> = 1/(4 alpha)."""
    alpha = 0.7
    wf = gaussian_wf(alpha)
    configs = np.random.default_rng(3).normal(size=(400, 1, 1))
    accumulators = {"pos": lambda configs, wf: {"x2": configs.configs[:, 0, 0] ** 2}}
    df, _ = vmc(wf, configs, accumulators=accumulators, nblocks=30, nsteps_per_block=10, tstep=0.5, move=move, seed=7)
    x2 = np.mean(df["posx2"][5:])
    assert abs(x2 - 1 / (4 * alpha)) < 0.02, x2
    assert 0.2 < np.mean(df["acceptance"]) < 1.0


@pytest.mark.parametrize("move", ["drift", "gaussian"])
def test_fixed_node_never_crosses(move):
    wf = OddWF(0.5)
    configs = OpenConfigs(np.random.default_rng(5).normal(size=(200, 1, 1)))
    sign0 = np.sign(configs.configs[:, 0, 0])
    rng = RandomSource(12, 200)
    wf.recompute(configs)
    for _ in range(50):
        metropolis_step(wf, configs, rng, tstep=0.8, move=move, fixed_node=True)
    assert np.all(np.sign(configs.configs[:, 0, 0]) == sign0)


def test_nodes_crossed_without_fixed_node():
    wf = OddWF(0.5)
    configs = OpenConfigs(np.random.default_rng(5).normal(size=(200, 1, 1)))
    sign0 = np.sign(configs.configs[:, 0, 0])
    rng = RandomSource(12, 200)
    wf.recompute(configs)
    for _ in range(50):
        metropolis_step(wf, configs, rng, tstep=0.8, move="gaussian", fixed_node=False)
    assert np.any(np.sign(configs.configs[:, 0, 0]) != sign0)


@pytest.mark.parametrize("factor,ndiverged", [(0.0, 0), (np.nan, 40 * 2), (np.inf, 40 * 2)])
def test_bad_ratio_rejected(factor, ndiverged):
    """Zero or non-finite wave function ratios never move a walker."""
    wf = ScaledRatioWF(gaussian_wf(0.5), factor)
    configs = OpenConfigs(np.random.default_rng(2).normal(size=(40, 2, 3)))
    start = configs.configs.copy()
    wf.recompute(configs)
    res = metropolis_step(wf, configs, RandomSource(1, 40), tstep=0.5)
    assert np.all(res["acceptance"] == 0)
    assert res["ndiverged"] == ndiverged
    assert np.all(configs.configs == start)


def test_step_independent_of_partition():
    nconf = 9
    start = np.random.default_rng(4).normal(size=(nconf, 2, 3))

    wf = gaussian_wf(0.4)
    configs = OpenConfigs(start.copy())
    wf.recompute(configs)
    metropolis_step(wf, configs, RandomSource(21, nconf), tstep=0.5)

    rng = RandomSource(21, nconf)
    parts = OpenConfigs(start.copy()).split(3)
    for part, r in zip(parts, rng.split(3)):
        pwf = copy.deepcopy(wf)
        pwf.recompute(part)
        metropolis_step(pwf, part, r, tstep=0.5)
    joined = np.concatenate([p.configs for p in parts])
    assert np.allclose(joined, configs.configs, rtol=0, atol=1e-12)
