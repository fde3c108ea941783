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

from rwqmc.recipes import read_mc_output, read_opt
from rwqmc.config import RunConfig
from rwqmc.errors import ConfigurationError, PopulationCollapse
from rwqmc.rng import RandomSource
from rwqmc.configurations.coord import OpenConfigs
from rwqmc.configurations.walkers import Walkers
from rwqmc.observables.accumulators import EnergyAccumulator, LinearTransform, gradient_generator
from rwqmc.observables.energy import HarmonicPotential, CoulombPotential
from rwqmc.observables.blocking import BlockAccumulator, block_error
from rwqmc.method.mc import vmc, initial_guess, gaussian_guess
from rwqmc.method.dmc import rundmc
from rwqmc.method.optimize import optimize, SteepestDescent, SRDescent, MomentumDescent, NesterovMomentum, OnlineLbfgs
from rwqmc.reblock import reblock as avg_reblock
from rwqmc.reblock import optimally_reblocked
from rwqmc.wf.onebody import OneBodyProduct, gaussian_wf, exponential_wf
