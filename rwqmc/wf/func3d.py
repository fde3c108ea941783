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

"""
Radial functions u(r) used as the exponent of one-body trial wave functions.
Each has a dictionary parameters holding its variational parameters as arrays of
shape (1,). The methods take rvec (..., ndim) and r = |rvec| (...), and work in
any number of dimensions.
"""

import numpy as np


class GaussianFunction:
    r"""
    .. math:: u(r) = -\alpha r^2

    With :math:`\alpha = \omega/2`, :math:`e^{u}` is the ground state of the harmonic oscillator.
    """

    def __init__(self, alpha):
        self.parameters = {"alpha": np.atleast_1d(np.asarray(alpha, dtype=float))}

    def value(self, rvec, r):
        return -self.parameters["alpha"][0] * r**2

    def gradient(self, rvec, r):
        return -2 * self.parameters["alpha"][0] * rvec

    def gradient_value(self, rvec, r):
        return self.gradient(rvec, r), self.value(rvec, r)

    def laplacian(self, rvec, r):
        ndim = rvec.shape[-1]
        return np.full(r.shape, -2 * self.parameters["alpha"][0] * ndim)

    def gradient_laplacian(self, rvec, r):
        return self.gradient(rvec, r), self.laplacian(rvec, r)

    def pgradient(self, rvec, r):
        return {"alpha": -(r**2)}


class ExponentialFunction:
    r"""
    .. math:: u(r) = -\zeta r

    :math:`e^{u}` with :math:`\zeta = Z` is the hydrogenic 1s orbital. The gradient is
    undefined and the laplacian diverges at r = 0.
    """

    def __init__(self, zeta):
        self.parameters = {"zeta": np.atleast_1d(np.asarray(zeta, dtype=float))}

    def value(self, rvec, r):
        return -self.parameters["zeta"][0] * r

    def gradient(self, rvec, r):
        with np.errstate(divide="ignore", invalid="ignore"):
            return -self.parameters["zeta"][0] * rvec / r[..., np.newaxis]

    def gradient_value(self, rvec, r):
        return self.gradient(rvec, r), self.value(rvec, r)

    def laplacian(self, rvec, r):
        ndim = rvec.shape[-1]
        with np.errstate(divide="ignore", invalid="ignore"):
            return -self.parameters["zeta"][0] * (ndim - 1) / r

    def gradient_laplacian(self, rvec, r):
        return self.gradient(rvec, r), self.laplacian(rvec, r)

    def pgradient(self, rvec, r):
        return {"zeta": -r}


def test_func3d_gradient(bf, delta=1e-5, ndim=3):
    rvec = np.random.randn(150, 10, ndim)
    r = np.linalg.norm(rvec, axis=-1)
    grad = bf.gradient(rvec, r)
    numeric = np.zeros(rvec.shape)
    for d in range(ndim):
        shift = delta * np.eye(ndim)[d]
        plus = bf.value(rvec + shift, np.linalg.norm(rvec + shift, axis=-1))
        minus = bf.value(rvec - shift, np.linalg.norm(rvec - shift, axis=-1))
        numeric[..., d] = (plus - minus) / (2 * delta)
    return np.amax(np.abs(grad - numeric))


def test_func3d_laplacian(bf, delta=1e-5, ndim=3):
    rvec = np.random.randn(150, 10, ndim)
    r = np.linalg.norm(rvec, axis=-1)
    lap = bf.laplacian(rvec, r)
    numeric = np.zeros(r.shape)
    for d in range(ndim):
        shift = delta * np.eye(ndim)[d]
        plus = bf.gradient(rvec + shift, np.linalg.norm(rvec + shift, axis=-1))[..., d]
        minus = bf.gradient(rvec - shift, np.linalg.norm(rvec - shift, axis=-1))[..., d]
        numeric += (plus - minus) / (2 * delta)
    return np.amax(np.abs(lap - numeric))


def test_func3d_pgradient(bf, delta=1e-5):
    rvec = np.random.randn(150, 10, 3)
    r = np.linalg.norm(rvec, axis=-1)
    pgrad = bf.pgradient(rvec, r)
    error = {}
    for k in pgrad.keys():
        save = bf.parameters[k].copy()
        bf.parameters[k] = save + delta
        plus = bf.value(rvec, r)
        bf.parameters[k] = save - delta
        minus = bf.value(rvec, r)
        bf.parameters[k] = save
        error[k] = np.amax(np.abs(pgrad[k] - (plus - minus) / (2 * delta)))
    return error
