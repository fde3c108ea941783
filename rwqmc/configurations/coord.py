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
import copy


class OpenElectron:
    """Proposed positions of a single particle for every walker, shape (nconf, ndim)."""

    def __init__(self, epos):
        self.configs = epos


class OpenConfigs:
    """
    Particle coordinates for a set of walkers, shape (nconfig, nparticles, ndim).
    Nothing here assumes ndim == 3, so one and two dimensional model systems work too.
    """

    def __init__(self, configs):
        self.configs = np.asarray(configs, dtype=float)

    @property
    def ndim(self):
        return self.configs.shape[-1]

    def electron(self, e):
        return OpenElectron(self.configs[:, e])

    def make_irreducible(self, e, vec):
        """Wrap (nconfig, ndim) positions for particle e. Open boundaries need no wrapping."""
        return OpenElectron(vec)

    def move(self, e, new, accept):
        """
        :parameter int e: particle index
        :parameter new: OpenElectron with the proposed positions
        :parameter accept: (nconfig,) boolean; only these walkers move
        """
        self.configs[accept, e, :] = new.configs[accept, :]

    def resample(self, newinds):
        """Keep walker newinds[i] as walker i; the number of walkers may change."""
        self.configs = self.configs[newinds]

    def split(self, npartitions):
        return [OpenConfigs(c) for c in np.array_split(self.configs, npartitions)]

    def join(self, configslist):
        self.configs = np.concatenate([c.configs for c in configslist], axis=0)

    def copy(self):
        return copy.deepcopy(self)

    def initialize_hdf(self, hdf):
        nconf, nparticles, ndim = self.configs.shape
        hdf.create_dataset("configs", (nconf, nparticles, ndim), chunks=True, maxshape=(None, nparticles, ndim))

    def to_hdf(self, hdf):
        """Overwrite the stored coordinates; the walker count may have changed since the last block."""
        hdf["configs"].resize(self.configs.shape)
        hdf["configs"][...] = self.configs

    def load_hdf(self, hdf):
        """The number of configurations changes to the number in the hdf file."""
        self.configs = np.array(hdf["configs"])
