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
from rwqmc.configurations.coord import OpenConfigs
from rwqmc.method.mc import initial_guess, gaussian_guess
from rwqmc.observables.accumulators import EnergyAccumulator, LinearTransform, gradient_generator
from rwqmc.observables.energy import CoulombPotential, HarmonicPotential, ee_energy, ii_energy
from rwqmc.observables.stochastic_reconfiguration import nodal_regularization, energy_gradient, sr_direction
from rwqmc.wf.onebody import gaussian_wf, exponential_wf


def test_exact_harmonic_local_energy(harmonic, random_configs):
    """The Gaussian with alpha = omega/2 is an eigenfunction, so E_L is constant."""
    wf = gaussian_wf(harmonic["omega"] / 2)
    acc = EnergyAccumulator(harmonic["potential"])
    wf.recompute(random_configs)
    d = acc(random_configs, wf)
    nparticles = random_configs.configs.shape[1]
    assert np.allclose(d["total"], harmonic["potential"].exact_energy(nparticles, 3))
    assert np.allclose(d["total"], d["ke"] + d["pe"])
    assert acc.keys() == {"ke", "grad2", "total", "pe"}
    assert all(shape == () for shape in acc.shapes().values())


def test_exact_hydrogen_local_energy(H_atom_setup):
    mol, wf, acc = H_atom_setup
    configs = initial_guess(mol, 30, seed=1)
    assert configs.configs.shape == (30, 1, 3)
    wf.recompute(configs)
    d = acc["energy"](configs, wf)
    assert np.allclose(d["total"], -0.5)
    assert np.all(d["ee"] == 0)
    assert np.all(d["ii"] == 0)


def test_coulomb_terms():
    configs = OpenConfigs(np.array([[[0.0, 0.0, 0.0], [0.0, 0.0, 2.0]]]))
    assert np.allclose(ee_energy(configs), 0.5)
    charges = np.array([1.0, 2.0])
    coords = np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 4.0]])
    assert np.isclose(ii_energy(charges, coords), 0.5)


def test_coulomb_potential_molecule():
    from pyscf import gto

    mol = gto.M(atom="H 0. 0. 0.; H 0. 0. 1.4", basis="sto-3g", unit="bohr", verbose=0)
    pot = CoulombPotential(mol)
    configs = OpenConfigs(np.array([[[0.0, 0.0, 0.7], [0.0, 1.0, 0.7]]]))
    d = pot(configs)
    assert np.isclose(d["ii"][0], 1 / 1.4)
    assert np.isclose(d["ee"][0], 1.0)
    expected_ei = -(2 / 0.7 + 2 / np.sqrt(1 + 0.7**2))
    assert np.isclose(d["ei"][0], expected_ei)


def test_linear_transform():
    params = {"a": np.array([1.0, 2.0, 3.0]), "b": np.array([4.0])}
    to_opt = {"a": np.array([True, False, True]), "b": np.array([False])}
    transform = LinearTransform(params, to_opt)
    assert transform.nparams == 2
    x = transform.serialize_parameters(params)
    assert np.allclose(x, [1.0, 3.0])

    class Holder:
        parameters = params

    new = transform.deserialize(Holder, np.array([-1.0, -3.0]))
    assert np.allclose(new["a"], [-1.0, 2.0, -3.0])
    assert "b" not in new

    pgrad = {"a": np.arange(6.0).reshape(2, 3), "b": np.ones((2, 1))}
    assert np.allclose(transform.serialize_gradients(pgrad), [[0.0, 2.0], [3.0, 5.0]])


def test_nodal_regularization():
    grad2 = np.array([1e8, 1.0, 1e5])
    mask, f = nodal_regularization(grad2, nodal_cutoff=1e-3)
    assert np.all(mask == [True, False, False])
    assert f[1] == 1.0
    assert 0 < f[0] < 1


def test_sr_accumulator_shapes(harmonic):
    wf = gaussian_wf(0.3)
    acc = gradient_generator(harmonic["potential"], wf)
    configs = gaussian_guess(25, 2, seed=3)
    wf.recompute(configs)
    d = acc(configs, wf)
    assert d["dppsi"].shape == (25, 1)
    assert d["dpidpj"].shape == (25, 1, 1)
    assert np.allclose(d["dppsi"][:, 0], -np.sum(configs.configs**2, axis=(1, 2)))
    avg = acc.avg(configs, wf)
    # E decreases with alpha below the optimum alpha = 0.5, so the descent direction increases alpha
    assert energy_gradient(avg)[0] < 0
    assert sr_direction(avg)[0] < 0
    overlap = avg["dpidpj"][0, 0] - avg["dppsi"][0] ** 2
    assert np.allclose(sr_direction(avg, eps=1e-12, inverse_strategy="pseudo_inverse"), energy_gradient(avg) / overlap)
    assert set(acc.keys()) >= {"dpH", "dppsi", "dpidpj", "total"}


def test_harmonic_exact_energy():
    assert HarmonicPotential(2.0).exact_energy(3, 2) == 6.0


def test_exponential_wf_value():
    wf = exponential_wf(2.0)
    configs = OpenConfigs(np.array([[[3.0, 4.0, 0.0]]]))
    sign, logval = wf.recompute(configs)
    assert np.isclose(logval[0], -10.0)


class PlainMolecule:
    """Just the molecule interface the core package reads; no pyscf needed."""

    nelec = (2, 0)

    def atom_charges(self):
        return np.array([1, 1])

    def atom_coords(self):
        return np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 1.4]])


def test_molecule_without_pyscf():
    mol = PlainMolecule()
    configs = initial_guess(mol, 10, r=0.0, seed=3)
    assert configs.configs.shape == (10, 2, 3)
    # equal charges split the two up electrons one per nucleus
    assert np.allclose(configs.configs[:, 0], mol.atom_coords()[0])
    assert np.allclose(configs.configs[:, 1], mol.atom_coords()[1])
    pot = CoulombPotential(mol)
    d = pot(OpenConfigs(np.array([[[0.0, 0.0, 0.7], [0.0, 1.0, 0.7]]])))
    assert np.isclose(d["ii"][0], 1 / 1.4)
    assert np.isclose(d["ei"][0], -(2 / 0.7 + 2 / np.sqrt(1 + 0.7**2)))
