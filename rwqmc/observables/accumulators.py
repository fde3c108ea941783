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
import rwqmc.observables.energy as energy
from rwqmc.observables.stochastic_reconfiguration import StochasticReconfiguration


def gradient_generator(potential, wf, to_opt=None, nodal_cutoff=1e-3):
    return StochasticReconfiguration(
        EnergyAccumulator(potential), LinearTransform(wf.parameters, to_opt), nodal_cutoff=nodal_cutoff
    )


class EnergyAccumulator:
    """Returns local energy of each configuration in a dictionary.

    potential is a callable that takes configs and returns a dictionary of
    per-configuration potential energy terms; its ``keys`` attribute names them.
    A non-finite ``total`` marks a failed evaluation, never a valid extreme value.
    """

    def __init__(self, potential):
        self.potential = potential

    def __call__(self, configs, wf):
        pot = self.potential(configs)
        ke, grad2 = energy.kinetic(configs, wf)
        d = {"ke": np.asarray(ke), "grad2": grad2}
        d.update(pot)
        d["total"] = np.asarray(ke + sum(pot.values()))
        return d

    def avg(self, configs, wf):
        return {k: np.mean(it, axis=0) for k, it in self(configs, wf).items()}

    def keys(self):
        return set(["ke", "grad2", "total", *self.potential.keys])

    def shapes(self):
        return {k: () for k in self.keys()}


class LinearTransform:
    """
    Linearize a dictionary of wf parameters.

    :parameter dict parameters: the wave function parameters
    :parameter dict to_opt: is a dictionary with the keys to optimize, and its values are boolean arrays indicating which specific elements to optimize

    to_opt doesn't have to have all the keys of parameters, but all keys of to_opt must be keys of parameters.
    Only real parameters are supported.
    """

    def __init__(self, parameters, to_opt=None):
        if to_opt is None:
            to_opt = {k: np.ones(np.shape(p), dtype=bool) for k, p in parameters.items()}
        self.to_opt = {k: np.asarray(o, dtype=bool) for k, o in to_opt.items() if np.any(o)}
        self.shapes = {k: np.shape(parameters[k]) for k in self.to_opt}
        self.nparams = int(np.sum([o.sum() for o in self.to_opt.values()]))

    def serialize_parameters(self, parameters):
        """Convert the dictionary to a flat array of the optimized parameters"""
        if self.nparams == 0:
            return np.zeros(0)
        return np.concatenate(
            [np.asarray(parameters[k])[opt] for k, opt in self.to_opt.items()]
        )

    def serialize_gradients(self, pgrad):
        """Convert a dictionary of (nconf, *shape) parameter derivatives to (nconf, nparams)"""
        if self.nparams == 0:
            return np.zeros((0, 0))
        return np.concatenate(
            [np.asarray(pgrad[k])[:, opt] for k, opt in self.to_opt.items()], axis=1
        )

    def deserialize(self, wf, parameters):
        """Convert serialized parameters back to a dictionary; frozen parameters are copied from wf."""
        n = 0
        d = {}
        for k, opt in self.to_opt.items():
            p = np.array(wf.parameters[k], dtype=float)
            n_p = int(opt.sum())
            p[opt] = parameters[n : n + n_p]
            d[k] = p
            n += n_p
        return d
