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

import os
import collections
import logging
import numpy as np
import h5py
import rwqmc.method.mc as mc
import rwqmc.method.hdftools as hdftools
from rwqmc.observables.stochastic_reconfiguration import energy_gradient, sr_direction


class SteepestDescent:
    """x <- x - step * dE/dx"""

    def __init__(self, step=0.1):
        self.step = step

    def update(self, x, averages):
        return x - self.step * energy_gradient(averages)


class SRDescent:
    """
    Stochastic reconfiguration: a steepest descent step preconditioned by the
    inverse of the (regularized) overlap matrix of the parameter derivatives.
    """

    def __init__(self, step=0.1, eps=1e-1, inverse_strategy="regularized_inverse"):
        self.step = step
        self.eps = eps
        self.inverse_strategy = inverse_strategy

    def update(self, x, averages):
        return x - self.step * sr_direction(averages, self.eps, self.inverse_strategy)


class MomentumDescent:
    """
    Heavy-ball descent. The velocity is kept between calls:
    v <- momentum * v - step * dE/dx, then x <- x + v.
    """

    def __init__(self, step=0.05, momentum=0.5):
        self.step = step
        self.momentum = momentum
        self.velocity = None

    def update(self, x, averages):
        grad = energy_gradient(averages)
        if self.velocity is None:
            self.velocity = np.zeros_like(grad)
        self.velocity = self.momentum * self.velocity - self.step * grad
        return x + self.velocity


class NesterovMomentum:
    """
    Nesterov accelerated descent in the form that only needs the gradient at the
    current parameters: x <- x - momentum * v_old + (1 + momentum) * v.
    """

    def __init__(self, step=0.05, momentum=0.5):
        self.step = step
        self.momentum = momentum
        self.velocity = None

    def update(self, x, averages):
        grad = energy_gradient(averages)
        if self.velocity is None:
            self.velocity = np.zeros_like(grad)
        previous = self.velocity
        self.velocity = self.momentum * previous - self.step * grad
        return x - self.momentum * previous + (1 + self.momentum) * self.velocity


class OnlineLbfgs:
    """
    Limited-memory BFGS with the curvature pairs of the last `history` iterations.

    A pair s = x - x_prev, y = g - g_prev is only kept if s.y > 0, which noisy
    gradients do not guarantee. Without any pairs the step is steepest descent
    scaled by initial_scale. The initial inverse Hessian is the average of s.y/y.y
    over the stored pairs.
    """

    def __init__(self, step=1.0, history=5, initial_scale=0.1):
        self.step = step
        self.history = history
        self.initial_scale = initial_scale
        self.pairs = collections.deque(maxlen=history)
        self.x_prev = None
        self.grad_prev = None

    def direction(self, grad):
        """-H g by the two-loop recursion."""
        if len(self.pairs) == 0:
            return -self.initial_scale * grad
        q = -np.array(grad, dtype=float)
        alphas = []
        for s, y in reversed(self.pairs):
            alpha = np.dot(s, q) / np.dot(s, y)
            q -= alpha * y
            alphas.append(alpha)
        q *= np.mean([np.dot(s, y) / np.dot(y, y) for s, y in self.pairs])
        for (s, y), alpha in zip(self.pairs, reversed(alphas)):
            q += (alpha - np.dot(y, q) / np.dot(y, s)) * s
        return q

    def update(self, x, averages):
        grad = energy_gradient(averages)
        if self.x_prev is not None:
            s, y = x - self.x_prev, grad - self.grad_prev
            if np.dot(s, y) > 0:
                self.pairs.append((s, y))
        self.x_prev, self.grad_prev = np.array(x, dtype=float), grad
        return x + self.step * self.direction(grad)


def opt_hdf(hdf_file, data, attr, walkers, parameters):
    if hdf_file is not None:
        with h5py.File(hdf_file, "a") as hdf:
            if "configs" not in hdf.keys():
                walkers.initialize_hdf(hdf)
                hdf.create_group("wf")
                for k, it in parameters.items():
                    hdf.create_dataset("wf/" + k, data=np.asarray(it))
            hdftools.append_hdf(hdf, data, attr)
            walkers.to_hdf(hdf)
            for k, it in parameters.items():
                hdf["wf/" + k][...] = np.asarray(it)


def set_wf_params(wf, params, pgrad_acc):
    """Write serialized parameters back into wf.parameters."""
    wf.parameters.update(pgrad_acc.transform.deserialize(wf, params))


def read_restart(hdf_file, wf, walkers, seed=None):
    """
    Load the parameters and walkers of the last stored iteration into wf and walkers.

    :returns: the next iteration number
    """
    with h5py.File(hdf_file, "r") as hdf:
        for k, it in hdf.get("wf", {}).items():
            wf.parameters[k] = np.array(it)
        next_iteration = int(np.max(hdf["iteration"][...])) + 1 if "iteration" in hdf else 0
        walkers.load_hdf(hdf, seed=mc.restart_seed(seed, next_iteration))
    return next_iteration


def iteration_averages(df_vmc, pgrad_acc, name="pgrad"):
    """Average the per-block SR moments of one VMC run, and the standard error of the energy."""
    total = df_vmc[name + "total"]
    if np.any(np.isnan(total)):
        raise ValueError("NaN in optimization. Try reducing the step size or increasing stabilization.")
    averages = {k: np.mean(df_vmc[name + k], axis=0) for k in pgrad_acc.keys()}
    averages["total_err"] = np.std(total) / np.sqrt(len(total))
    return averages


def optimize(
    wf,
    coords,
    pgrad_acc,
    optimizer,
    max_iterations=10,
    warmup_options=None,
    vmcoptions=None,
    verbose=False,
    hdf_file=None,
    client=None,
    npartitions=None,
):
    """Optimizes energy by alternating VMC sampling of the energy and its parameter
    derivatives with an update of the parameters by an optimizer.

    If hdf_file exists, the parameters and walkers of its last iteration are loaded
    and the optimization continues from the next iteration without a warmup.

    :parameter wf: initial wave function; its parameters are updated in place
    :parameter coords: initial configurations, or Walkers
    :parameter pgrad_acc: A StochasticReconfiguration-like accumulator
    :parameter optimizer: object with update(x, averages) -> new serialized parameters
    :parameter int max_iterations: total number of iterations, including iterations from previous runs stored in hdf_file
    :parameter dict warmup_options: VMC keyword arguments for the warmup before the first iteration
    :parameter dict vmcoptions: VMC keyword arguments for each iteration
    :parameter str hdf_file: stores one row per iteration, the walkers and the current parameters
    :parameter client: an object with submit() functions that return futures
    :parameter int npartitions: the number of workers to submit at a time
    :return: wave function, list with a dictionary per iteration
    """
    vmcoptions = dict(vmcoptions or {})
    warmup_options = dict(warmup_options or dict(nblocks=1, nsteps_per_block=100))
    warmup_options.setdefault("tstep", vmcoptions.get("tstep", 0.5))
    walkers = mc.as_walkers(coords, seed=vmcoptions.get("seed"))

    first_iteration = 0
    if hdf_file is not None and os.path.isfile(hdf_file):
        first_iteration = read_restart(hdf_file, wf, walkers, vmcoptions.get("seed"))
        if verbose:
            print("restarting from iteration", first_iteration)
    else:
        mc.vmc(wf, walkers, accumulators={}, client=client, npartitions=npartitions, **warmup_options)
    if first_iteration >= max_iterations:
        logging.warning(f"{hdf_file} already holds {first_iteration} iterations; no steps will be run.")

    df = []
    for it in range(first_iteration, max_iterations):
        x0 = pgrad_acc.transform.serialize_parameters(wf.parameters)
        df_vmc, walkers = mc.vmc(
            wf,
            walkers,
            accumulators={"pgrad": pgrad_acc},
            client=client,
            npartitions=npartitions,
            verbose=verbose,
            **vmcoptions,
        )
        averages = iteration_averages(df_vmc, pgrad_acc)
        x1 = optimizer.update(x0, averages)
        step_data = {
            "energy": np.real(averages["total"]),
            "energy_error": np.real(averages["total_err"]),
            "pgrad": np.linalg.norm(energy_gradient(averages)),
            "iteration": it,
            "nconfig": len(walkers),
            "x": x0,
        }
        if verbose:
            print("iteration", it, "energy", step_data["energy"], "+/-", step_data["energy_error"])
            print("|grad|", step_data["pgrad"], "x", x0, "->", x1, flush=True)
        set_wf_params(wf, x1, pgrad_acc)
        opt_hdf(hdf_file, step_data, dict(max_iterations=max_iterations), walkers, wf.parameters)
        df.append(step_data)
    return wf, df
