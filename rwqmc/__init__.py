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
Real-space variational and diffusion Monte Carlo sampling.
This package provides the Metropolis sampler, block-averaged observables, and the
branching random walk with population control used in variational Monte Carlo (VMC)
and diffusion Monte Carlo (DMC). The trial wave function, Hamiltonian, and parameter
optimizer are supplied by the caller through small duck-typed interfaces."""


name = "rwqmc"

__version__ = "0.1.0"
