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
from rwqmc.rng import RandomSource


class Walkers:
    """
    Arena of walker state. Walker i is row i of every array:

    * ``configs.configs[i]``: particle coordinates
    * ``sign[i]``, ``logval[i]``: wave function sign and log magnitude
    * ``eloc[i]``: local energy
    * ``drift[i]``: grad psi / psi for each particle, shape (nparticles, ndim)
    * ``weights[i]``: statistical weight (1 for VMC)
    * ``age[i]``: number of steps taken, whether or not the moves were accepted
    * ``rng.streams[i]``: the walker's private random stream

    The arena is only resized through :meth:`resample`, which swaps in all arrays
    at once given a list of surviving indices.
    """

    def __init__(self, configs, rng=None, seed=None, weights=None, age=None):
        if not isinstance(configs, OpenConfigs):
            configs = OpenConfigs(configs)
        self.configs = configs
        nconf, npart, ndim = configs.configs.shape
        self.rng = rng if rng is not None else RandomSource(seed, nconf)
        if len(self.rng) != nconf:
            raise ValueError(
                f"{len(self.rng)} random streams for {nconf} walkers; each walker needs its own stream"
            )
        self.weights = np.ones(nconf) if weights is None else np.asarray(weights, dtype=float)
        self.age = np.zeros(nconf, dtype=int) if age is None else np.asarray(age, dtype=int)
        self.sign = np.ones(nconf)
        self.logval = np.zeros(nconf)
        self.eloc = np.zeros(nconf)
        self.drift = np.zeros((nconf, npart, ndim))

    def __len__(self):
        return self.configs.configs.shape[0]

    @property
    def nparticles(self):
        return self.configs.configs.shape[1]

    def update_wavefunction(self, wf):
        """Store value and drift from a wave function whose internals match configs."""
        self.sign, self.logval = (np.asarray(v) for v in wf.value())
        for e in range(self.nparticles):
            self.drift[:, e, :] = np.real(wf.gradient(e, self.configs.electron(e))).T

    def split(self, npartitions):
        arrays = ["weights", "age", "sign", "logval", "eloc", "drift"]
        configs = self.configs.split(npartitions)
        rngs = self.rng.split(npartitions)
        pieces = {k: np.array_split(getattr(self, k), npartitions) for k in arrays}
        parts = []
        for i, (c, r) in enumerate(zip(configs, rngs)):
            w = Walkers(c, rng=r)
            for k in arrays:
                setattr(w, k, pieces[k][i])
            parts.append(w)
        return parts

    def join(self, walkerlist):
        self.configs.join([w.configs for w in walkerlist])
        self.rng.join([w.rng for w in walkerlist])
        for k in ["weights", "age", "sign", "logval", "eloc", "drift"]:
            setattr(self, k, np.concatenate([getattr(w, k) for w in walkerlist]))

    def resample(self, newinds):
        newinds = np.asarray(newinds, dtype=int)
        self.configs.resample(newinds)
        self.rng.resample(newinds)
        for k in ["weights", "age", "sign", "logval", "eloc", "drift"]:
            setattr(self, k, getattr(self, k)[newinds])

    def initialize_hdf(self, hdf):
        self.configs.initialize_hdf(hdf)
        for k in ["weights", "age"]:
            hdf.create_dataset(k, (len(self),), maxshape=(None,), dtype=getattr(self, k).dtype)

    def to_hdf(self, hdf):
        self.configs.to_hdf(hdf)
        for k in ["weights", "age"]:
            hdf[k].resize((len(self),))
            hdf[k][...] = getattr(self, k)

    def load_hdf(self, hdf, seed=None):
        """Load coordinates, weights, and ages; the random streams are reseeded from seed."""
        self.configs.load_hdf(hdf)
        nconf, npart, ndim = self.configs.configs.shape
        self.weights = np.array(hdf["weights"]) if "weights" in hdf.keys() else np.ones(nconf)
        self.age = np.array(hdf["age"]) if "age" in hdf.keys() else np.zeros(nconf, dtype=int)
        self.rng = RandomSource(seed, nconf)
        self.sign = np.ones(nconf)
        self.logval = np.zeros(nconf)
        self.eloc = np.zeros(nconf)
        self.drift = np.zeros((nconf, npart, ndim))
