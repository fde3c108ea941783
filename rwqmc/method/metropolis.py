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


def limdrift(g, cutoff=1.0):
    """
    Limit a vector to have a maximum magnitude of cutoff while maintaining direction.
    Rows that are not finite are set to zero.

    :parameter g: a [nconf,ndim] vector
    :parameter cutoff: the maximum magnitude
    :returns: The vector with the cutoff applied.
    """
    finite = np.all(np.isfinite(g), axis=1)
    g = np.where(finite[:, np.newaxis], g, 0.0)
    tot = np.linalg.norm(g, axis=1)
    mask = tot > cutoff
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.where(mask[:, np.newaxis], cutoff * g / tot[:, np.newaxis], g)


def propose_gaussian(configs, e, rng, tstep):
    """Symmetric move of particle e, x' = x + sqrt(tstep) * noise.

    :returns: new positions, displacement, and the ratio T(x|x')/T(x'|x), which is 1
    """
    gauss = rng.normal(scale=np.sqrt(tstep), size=configs.ndim)
    newepos = configs.make_irreducible(e, configs.configs[:, e, :] + gauss)
    return newepos, gauss, None


def propose_drift_diffusion(wf, configs, e, rng, tstep, drift_cutoff=1.0):
    """Importance-sampled move of particle e, x' = x + tstep * v(x) + sqrt(tstep) * noise.

    :returns: new positions, displacement, and the limited drift at the old position
    """
    grad = limdrift(np.real(wf.gradient(e, configs.electron(e)).T), drift_cutoff)
    gauss = rng.normal(scale=np.sqrt(tstep), size=configs.ndim)
    newepos = configs.make_irreducible(e, configs.configs[:, e, :] + gauss + grad * tstep)
    return newepos, gauss + grad * tstep, grad


def transition_ratio(gauss, grad, new_grad, tstep):
    r"""
    Green's function ratio :math:`T(x|x')/T(x'|x)` for the drift-diffusion move.
    The forward move used displacement grad * tstep + gauss; the reverse move
    needs x - x' - tstep * v(x') = -(gauss + tstep * (grad + new_grad)).
    """
    forward = np.sum(gauss**2, axis=1)
    backward = np.sum((gauss + tstep * (grad + new_grad)) ** 2, axis=1)
    with np.errstate(over="ignore", invalid="ignore"):
        return np.exp((forward - backward) / (2 * tstep))


def metropolis_step(wf, configs, rng, tstep, move="drift", fixed_node=False, drift_cutoff=1.0):
    """
    One sweep of single-particle Metropolis-Hastings moves over all particles.

    A proposal is accepted with probability min(1, |psi'/psi|^2 T(x|x')/T(x'|x)).
    It is always rejected if the wave function ratio is zero or not finite, if the
    drift at the new position is not finite, or (with fixed_node) if the sign of the
    wave function would change. Accepted moves update the coordinates and the wave
    function internals together; rejected moves leave both untouched.

    Every walker draws its noise and its acceptance number from its own stream in rng,
    whatever the outcome, so results do not depend on how walkers are partitioned.

    :parameter wf: wave function object; its internals must match configs
    :parameter configs: OpenConfigs, modified in place
    :parameter rng: RandomSource with one stream per configuration
    :returns: dictionary with per-walker acceptance, proposed and accepted squared displacements,
      and the number of proposals rejected for non-finite values
    """
    nconf, nelec, ndim = configs.configs.shape
    acceptance = np.zeros(nconf)
    r2_proposed = np.zeros(nconf)
    r2_accepted = np.zeros(nconf)
    ndiverged = 0
    for e in range(nelec):
        if move == "drift":
            newepos, displacement, grad = propose_drift_diffusion(
                wf, configs, e, rng, tstep, drift_cutoff
            )
        else:
            newepos, displacement, grad = propose_gaussian(configs, e, rng, tstep)

        g, ratio, saved = wf.gradient_value(e, newepos)
        with np.errstate(over="ignore", invalid="ignore"):
            prob = np.abs(ratio) ** 2
        valid = np.isfinite(ratio) & np.isfinite(prob)
        if grad is not None:
            g = np.real(g.T)
            valid &= np.all(np.isfinite(g), axis=1)
            gauss = displacement - grad * tstep
            with np.errstate(over="ignore", invalid="ignore"):
                prob = prob * transition_ratio(gauss, grad, limdrift(g, drift_cutoff), tstep)
        ndiverged += int(np.count_nonzero(~valid))
        valid &= np.abs(ratio) > 0
        if fixed_node and not wf.iscomplex:
            valid &= np.real(ratio) > 0

        accept = valid & (prob > rng.random())

        configs.move(e, newepos, accept)
        wf.updateinternals(e, newepos, configs, mask=accept, saved_values=saved)
        r2 = np.sum(displacement**2, axis=1)
        r2_proposed += r2
        r2_accepted[accept] += r2[accept]
        acceptance += accept / nelec
    return {
        "acceptance": acceptance,
        "r2_proposed": r2_proposed,
        "r2_accepted": r2_accepted,
        "ndiverged": ndiverged,
    }
