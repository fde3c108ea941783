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
import rwqmc.wf.func3d as func3d


class OneBodyProduct:
    r"""
    Product of identical one-particle factors about a fixed center,

    .. math:: \Psi(R) = \exp\left(\sum_i u(|r_i - c|)\right)

    where u is a func3d object. The particles are treated as distinguishable, so this
    function has no nodes. It is exact for independent particles in a harmonic well
    (GaussianFunction) or around a hydrogenic nucleus (ExponentialFunction).
    """

    def __init__(self, func, center=None):
        self.func = func
        self.parameters = func.parameters
        self.center = None if center is None else np.asarray(center, dtype=float)
        self.iscomplex = False
        self.dtype = float

    def _distance(self, pos):
        rvec = pos if self.center is None else pos - self.center
        return rvec, np.linalg.norm(rvec, axis=-1)

    def recompute(self, configs):
        """Compute the wave function from scratch and store the per-particle exponents."""
        self._configscurrent = configs.copy()
        self._u = self.func.value(*self._distance(configs.configs))
        return self.value()

    def updateinternals(self, e, epos, configs, mask=None, saved_values=None):
        if mask is None:
            mask = np.ones(self._u.shape[0], dtype=bool)
        mask = np.asarray(mask, dtype=bool)
        if saved_values is None:
            unew = self.func.value(*self._distance(epos.configs[mask]))
        else:
            unew = saved_values[mask]
        self._u[mask, e] = unew
        self._configscurrent.move(e, epos, mask)

    def value(self):
        """:returns: (sign, log magnitude) for each configuration"""
        return np.ones(self._u.shape[0]), np.sum(self._u, axis=1)

    def testvalue(self, e, epos, mask=None):
        """Ratio psi(new)/psi(old) when particle e moves to epos; also returns the new exponent."""
        if mask is None:
            mask = np.ones(self._u.shape[0], dtype=bool)
        unew = self.func.value(*self._distance(epos.configs[mask]))
        return np.exp(unew - self._u[mask, e]), unew

    def gradient(self, e, epos):
        """grad ln psi with respect to particle e at epos, shape (ndim, nconf)"""
        return self.func.gradient(*self._distance(epos.configs)).T

    def gradient_value(self, e, epos):
        grad, unew = self.func.gradient_value(*self._distance(epos.configs))
        return grad.T, np.exp(unew - self._u[:, e]), unew

    def gradient_laplacian(self, e, epos):
        """grad ln psi and (lap psi)/psi for particle e"""
        grad, lapu = self.func.gradient_laplacian(*self._distance(epos.configs))
        lap = lapu + np.sum(grad**2, axis=-1)
        return grad.T, lap

    def laplacian(self, e, epos):
        return self.gradient_laplacian(e, epos)[1]

    def pgradient(self):
        r"""
        :returns: :math:`\partial \ln \Psi / \partial p` for each parameter, shape (nconf, 1)
        :rtype: dictionary
        """
        deriv = self.func.pgradient(*self._distance(self._configscurrent.configs))
        return {k: np.sum(d, axis=1)[:, np.newaxis] for k, d in deriv.items()}


def gaussian_wf(alpha, center=None):
    return OneBodyProduct(func3d.GaussianFunction(alpha), center)


def exponential_wf(zeta, center=None):
    return OneBodyProduct(func3d.ExponentialFunction(zeta), center)
