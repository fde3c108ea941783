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


def nodal_regularization(grad2, nodal_cutoff=1e-3):
    r"""
    Smooth cutoff of the parameter derivatives near the nodes of the wave function.

    With :math:`r = 1/|\nabla \ln\Psi|^2` as the distance estimate, a configuration is
    near a node when :math:`r < \epsilon^2`, and there the derivatives are scaled by
    :math:`f = 9 (r/\epsilon^2) - 15 (r/\epsilon^2)^2 + 7 (r/\epsilon^2)^3`.

    S. Pathak and L. K. Wagner, AIP Advances 10, 085213 (2020),
    https://doi.org/10.1063/5.0004008

    :returns: mask of the configurations inside the cutoff, scale factor f (1 outside)
    """
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        x = 1.0 / (grad2 * nodal_cutoff**2)
        f = x * (9.0 + x * (-15.0 + 7.0 * x))
    near = x < 1.0
    return near, np.where(near, f, 1.0)


class StochasticReconfiguration:
    """
    Accumulates, for the same configuration and step, the local energy and the
    log-derivatives of the wave function with respect to its parameters, along with
    the moments an optimizer needs:

    * ``dppsi``: :math:`\\langle \\partial_i \\ln\\Psi \\rangle`
    * ``dpH``: :math:`\\langle E_L \\partial_i \\ln\\Psi \\rangle`
    * ``dpidpj``: :math:`\\langle \\partial_i \\ln\\Psi \\partial_j \\ln\\Psi \\rangle`
    """

    def __init__(self, enacc, transform, nodal_cutoff=1e-3):
        self.enacc = enacc
        self.transform = transform
        self.nodal_cutoff = nodal_cutoff

    def __call__(self, configs, wf):
        out = self.enacc(configs, wf)
        dlogpsi = self.transform.serialize_gradients(wf.pgradient())
        _, scale = nodal_regularization(out["grad2"], self.nodal_cutoff)
        smoothed = dlogpsi * scale[:, np.newaxis]
        out["dppsi"] = smoothed
        out["dpH"] = out["total"][:, np.newaxis] * smoothed
        out["dpidpj"] = dlogpsi[:, :, np.newaxis] * smoothed[:, np.newaxis, :]
        return out

    def avg(self, configs, wf, weights=None):
        if weights is None:
            weights = np.ones(configs.configs.shape[0])
        wtot = np.sum(weights)
        return {k: np.tensordot(weights, it, axes=1) / wtot for k, it in self(configs, wf).items()}

    def keys(self):
        return self.enacc.keys() | {"dpH", "dppsi", "dpidpj"}

    def shapes(self):
        n = self.transform.nparams
        shapes = dict(self.enacc.shapes())
        shapes.update(dpH=(n,), dppsi=(n,), dpidpj=(n, n))
        return shapes


def energy_gradient(data):
    """Derivative of the energy with respect to the parameters, 2 Re(<E dlnpsi> - <E><dlnpsi>)."""
    return 2 * np.real(data["dpH"] - data["total"] * data["dppsi"])


def sr_direction(data, eps=1e-1, inverse_strategy="regularized_inverse"):
    """
    S^-1 g, where S_ij = <dlnpsi_i dlnpsi_j> - <dlnpsi_i><dlnpsi_j> is the overlap matrix
    of the parameter derivatives and g the energy gradient.
    """
    grad = energy_gradient(data)
    overlap = np.real(data["dpidpj"] - np.outer(data["dppsi"], data["dppsi"]))
    if inverse_strategy == "pseudo_inverse":
        return np.linalg.pinv(overlap, rcond=eps) @ grad
    if inverse_strategy == "regularized_inverse":
        return np.linalg.solve(overlap + eps * np.eye(overlap.shape[0]), grad)
    raise ValueError("Invalid inverse strategy. Valid options are pseudo_inverse and regularized_inverse.")
