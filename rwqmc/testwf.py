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
Finite-difference consistency checks for wave function objects. Each function
returns the largest deviation it finds; the caller decides on a tolerance.
"""

import copy
import numpy as np


def _ratio(sign_logval, ref):
    """psi/psi_ref from two (sign, logval) pairs."""
    return sign_logval[0] / ref[0] * np.exp(sign_logval[1] - ref[1])


def _displaced(configs, e, d, delta):
    """Positions of particle e shifted by +delta and -delta along axis d."""
    shift = np.zeros(configs.configs.shape[-1])
    shift[d] = delta
    pos = configs.configs[:, e, :]
    return (
        configs.make_irreducible(e, pos + shift),
        configs.make_irreducible(e, pos - shift),
    )


def test_mask(wf, e, epos, mask=None, seed=None):
    """testvalue restricted to mask agrees with the unmasked call."""
    if mask is None:
        nconf = len(wf.value()[1])
        mask = np.random.default_rng(seed).random(nconf) < 0.5
    masked, _ = wf.testvalue(e, epos, mask)
    if len(masked) == 0:
        return 0.0
    full = wf.testvalue(e, epos)[0][mask]
    return np.amax(np.abs(masked - full)) / np.amax(np.abs(masked))


def test_updateinternals(wf, configs, delta=1e-2):
    """
    Move every particle in turn. The ratio from testvalue, the value after
    updateinternals, and a value recomputed from scratch should all agree.

    :parameter configs: particle positions; modified
    :returns: max abs errors
    :rtype: dictionary
    """
    nconf, nelec = configs.configs.shape[:2]
    scratch = copy.deepcopy(wf)
    previous = wf.recompute(configs)
    errors = {"updatevstest": 0.0, "recomputevstest": 0.0, "recomputevsupdate": 0.0}
    for e in range(nelec):
        epos = configs.make_irreducible(e, configs.configs[:, e, :] + delta)
        tested, saved = wf.testvalue(e, epos)
        wf.updateinternals(e, epos, configs, saved_values=saved)
        configs.move(e, epos, np.ones(nconf, dtype=bool))
        updated = _ratio(wf.value(), previous)
        current = scratch.recompute(configs)
        recomputed = _ratio(current, previous)
        for key, diff in [
            ("updatevstest", updated - tested),
            ("recomputevstest", recomputed - tested),
            ("recomputevsupdate", updated - recomputed),
        ]:
            errors[key] = max(errors[key], np.amax(np.abs(diff)))
        previous = current
    return errors


def test_wf_gradient(wf, configs, delta=1e-5):
    """Tests wf.gradient(e,epos) against central differences of wf.testvalue(e,epos)

    testvalue gives psi with particle e at epos over the current psi, so its
    derivative at the current position is grad ln psi.

    :parameter float delta: the finite difference step; 1e-5 to 1e-6 seem to be the best compromise between accuracy and machine precision
    :returns: max abs error
    """
    nelec, ndim = configs.configs.shape[1:]
    wf.recompute(configs)
    err = 0.0
    for e in range(nelec):
        analytic = wf.gradient(e, configs.electron(e))
        for d in range(ndim):
            plus, minus = _displaced(configs, e, d, delta)
            numeric = (wf.testvalue(e, plus)[0] - wf.testvalue(e, minus)[0]) / (2 * delta)
            err = max(err, np.amax(np.abs(analytic[d] - numeric)))
    return err


def test_wf_laplacian(wf, configs, delta=1e-5):
    """(lap psi)/psi from wf.laplacian against differences of psi-weighted gradients.

    :returns: max abs error
    """
    nelec, ndim = configs.configs.shape[1:]
    wf.recompute(configs)
    err = 0.0
    for e in range(nelec):
        numeric = 0.0
        for d in range(ndim):
            plus, minus = _displaced(configs, e, d, delta)
            dplus = wf.gradient(e, plus)[d] * wf.testvalue(e, plus)[0]
            dminus = wf.gradient(e, minus)[d] * wf.testvalue(e, minus)[0]
            numeric = numeric + (dplus - dminus) / (2 * delta)
        err = max(err, np.amax(np.abs(wf.laplacian(e, configs.electron(e)) - numeric)))
    return err


def test_wf_pgradient(wf, configs, delta=1e-5):
    """d ln psi / dp from wf.pgradient() against recomputing with shifted parameters."""
    reference = wf.recompute(configs)
    analytic = wf.pgradient()
    err = 0.0
    for k, grad in analytic.items():
        saved = np.array(wf.parameters[k], dtype=float)
        assert saved.shape == grad.shape[1:]
        flat_grad = grad.reshape((grad.shape[0], -1))
        for i in range(saved.size):
            shifted = []
            for sgn in [1, -1]:
                p = saved.copy().reshape(-1)
                p[i] += sgn * delta
                wf.parameters[k] = p.reshape(saved.shape)
                shifted.append(_ratio(wf.recompute(configs), reference))
            numeric = (shifted[0] - shifted[1]) / (2 * delta)
            err = max(err, np.amax(np.abs(flat_grad[:, i] - numeric)))
        wf.parameters[k] = saved
    wf.recompute(configs)
    return err


def test_wf_gradient_laplacian(wf, configs):
    """gradient_laplacian agrees with separate gradient and laplacian calls; relative errors."""
    wf.recompute(configs)
    err = {"grad": 0.0, "lap": 0.0}
    for e in range(configs.configs.shape[1]):
        epos = configs.electron(e)
        grad, lap = wf.gradient_laplacian(e, epos)
        ref_grad = wf.gradient(e, epos)
        ref_lap = wf.laplacian(e, epos)
        err["grad"] = max(err["grad"], np.amax(np.abs((grad - ref_grad) / ref_grad)))
        err["lap"] = max(err["lap"], np.amax(np.abs((lap - ref_lap) / ref_lap)))
    return err


def test_wf_gradient_value(wf, configs):
    """gradient_value agrees with separate gradient and testvalue calls; relative errors."""
    wf.recompute(configs)
    err = {"grad": 0.0, "val": 0.0, "saved": 0.0}
    for e in range(configs.configs.shape[1]):
        epos = configs.electron(e)
        grad, val, saved = wf.gradient_value(e, epos)
        ref_val, ref_saved = wf.testvalue(e, epos)
        ref_grad = wf.gradient(e, epos)
        err["grad"] = max(err["grad"], np.amax(np.abs((grad - ref_grad) / ref_grad)))
        err["val"] = max(err["val"], np.amax(np.abs((val - ref_val) / ref_val)))
        err["saved"] = max(err["saved"], np.amax(np.abs(saved - ref_saved)))
    return err
