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


class HarmonicPotential:
    r"""
    Independent particles in an isotropic well, :math:`V = \frac{1}{2}\omega^2 \sum_i |r_i - c|^2`.
    The ground state energy is :math:`N d \omega / 2` for N particles in d dimensions.
    """

    def __init__(self, omega=1.0, center=None):
        self.omega = omega
        self.center = None if center is None else np.asarray(center, dtype=float)
        self.keys = ("pe",)

    def __call__(self, configs):
        rvec = configs.configs if self.center is None else configs.configs - self.center
        return {"pe": 0.5 * self.omega**2 * np.sum(rvec**2, axis=(1, 2))}

    def exact_energy(self, nparticles, ndim):
        return 0.5 * self.omega * nparticles * ndim


class CoulombPotential:
    """Electron-electron, electron-ion, and ion-ion Coulomb energy for a PySCF-like molecule."""

    def __init__(self, mol):
        self.charges = np.asarray(mol.atom_charges(), dtype=float)
        self.coords = np.asarray(mol.atom_coords())
        self.ii = ii_energy(self.charges, self.coords)
        self.keys = ("ee", "ei", "ii")

    def __call__(self, configs):
        ee = ee_energy(configs)
        ei = ei_energy(self.charges, self.coords, configs)
        return {"ee": ee, "ei": ei, "ii": np.full(ee.shape, self.ii)}


def ee_energy(configs):
    nconf, ne = configs.configs.shape[:2]
    ee = np.zeros(nconf)
    if ne == 1:
        return ee
    i, j = np.triu_indices(ne, k=1)
    d = np.linalg.norm(configs.configs[:, i] - configs.configs[:, j], axis=-1)
    with np.errstate(divide="ignore"):
        return np.sum(1.0 / d, axis=1)


def ei_energy(charges, coords, configs):
    ei = np.zeros(configs.configs.shape[0])
    with np.errstate(divide="ignore"):
        for c, coord in zip(charges, coords):
            delta = configs.configs - coord[np.newaxis, np.newaxis, :]
            deltar = np.sqrt(np.sum(delta**2, axis=2))
            ei += -c * np.sum(1.0 / deltar, axis=1)
    return ei


def ii_energy(charges, coords):
    i, j = np.triu_indices(len(charges), k=1)
    if len(i) == 0:
        return 0.0
    rij = np.linalg.norm(coords[i] - coords[j], axis=-1)
    return float(np.sum(charges[i] * charges[j] / rij))


def kinetic(configs, wf):
    """
    Local kinetic energy -1/2 (lap psi)/psi and the squared drift magnitude.
    """
    nconf, nelec = configs.configs.shape[:2]
    ke = np.zeros(nconf)
    grad2 = np.zeros(nconf)
    for e in range(nelec):
        grad, lap = wf.gradient_laplacian(e, configs.electron(e))
        ke += -0.5 * lap.real
        grad2 += np.sum(np.abs(grad) ** 2, axis=0)
    return ke, grad2
