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
os.environ["MKL_NUM_THREADS"] = "1"
os.environ["NUMEXPR_NUM_THREADS"] = "1"
os.environ["OMP_NUM_THREADS"] = "1"
import pytest
import numpy as np
from rwqmc.configurations.coord import OpenConfigs
from rwqmc.observables.accumulators import EnergyAccumulator
from rwqmc.observables.energy import HarmonicPotential, CoulombPotential
from rwqmc.wf.onebody import exponential_wf

""" 
In this file, we set up the model systems that are reused across the tests:
particles in a harmonic well, where a Gaussian trial function is exact for
alpha = omega/2, and the hydrogen atom from pyscf.
"""


def pytest_configure(config):
    config.addinivalue_line("markers", "slow: long Monte Carlo runs")


@pytest.fixture(scope="module")
def harmonic():
    """Two particles in a 3D harmonic well with omega = 1; exact energy 3."""
    omega = 1.0
    potential = HarmonicPotential(omega)
    return {
        "omega": omega,
        "nparticles": 2,
        "ndim": 3,
        "potential": potential,
        "exact": potential.exact_energy(2, 3),
    }


@pytest.fixture
def harmonic_accumulators(harmonic):
    return {"energy": EnergyAccumulator(harmonic["potential"])}


@pytest.fixture
def random_configs():
    rng = np.random.default_rng(8)
    return OpenConfigs(rng.normal(size=(20, 3, 3)))


@pytest.fixture(scope="module")
def H_atom():
    from pyscf import gto

    mol = gto.M(atom="H 0. 0. 0.", basis="sto-3g", unit="bohr", spin=1, verbose=0)
    return mol


@pytest.fixture
def H_atom_setup(H_atom):
    """Exact hydrogen ground state exp(-r); exact energy -0.5."""
    wf = exponential_wf(1.0)
    acc = {"energy": EnergyAccumulator(CoulombPotential(H_atom))}
    return H_atom, wf, acc
