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


class BlockAccumulator:
    """
    Running weighted sums of per-walker observables within one block.

    Every call to add() counts one sample per walker, so a walker whose move was
    rejected contributes its persisted value again. Accumulators filled by different
    workers are combined with merge(); finish() returns the block means and resets.
    Sums of squares are kept for scalar observables only.

    A walker with any non-finite value or weight is left out of every sum for that
    step and counted in nskipped, so a single divergence cannot spoil a block.
    """

    def __init__(self):
        self.zero()

    def zero(self):
        self.sums = {}
        self.sums2 = {}
        self.weight = 0.0
        self.nsamples = 0
        self.nskipped = 0

    def add(self, data, weights):
        """
        :parameter dict data: arrays whose leading axis runs over walkers
        :parameter weights: (nwalkers,) statistical weights; ones for VMC
        """
        weights = np.asarray(weights, dtype=float)
        data = {k: np.asarray(it) for k, it in data.items()}
        finite = np.isfinite(weights)
        for it in data.values():
            finite &= np.all(np.isfinite(it), axis=tuple(range(1, it.ndim)))
        if not np.all(finite):
            self.nskipped += int(np.count_nonzero(~finite))
            weights = weights[finite]
            data = {k: it[finite] for k, it in data.items()}
        for k, it in data.items():
            s = np.einsum("i,i...->...", weights, it)
            self.sums[k] = self.sums[k] + s if k in self.sums else s
            if it.ndim == 1:
                s2 = np.dot(weights, np.abs(it) ** 2)
                self.sums2[k] = self.sums2[k] + s2 if k in self.sums2 else s2
        self.weight += np.sum(weights)
        self.nsamples += len(weights)

    def merge(self, other):
        for k, s in other.sums.items():
            self.sums[k] = self.sums[k] + s if k in self.sums else s
        for k, s in other.sums2.items():
            self.sums2[k] = self.sums2[k] + s if k in self.sums2 else s
        self.weight += other.weight
        self.nsamples += other.nsamples
        self.nskipped += other.nskipped
        return self

    def mean(self):
        return {k: s / self.weight for k, s in self.sums.items()}

    def variance(self):
        """Weighted variance of the individual samples (not of the mean)."""
        mean = self.mean()
        return {k: s2 / self.weight - np.abs(mean[k]) ** 2 for k, s2 in self.sums2.items()}

    def finish(self):
        """Return (means, variances, total weight, number of samples) and start a new block."""
        ret = self.mean(), self.variance(), self.weight, self.nsamples
        self.zero()
        return ret


def block_error(block_means, weights=None):
    """
    Estimate the mean and its standard error from a series of block means.

    The blocks must be long compared to the autocorrelation time of the underlying
    Markov chain for the standard error to be meaningful; this is not checked.

    :parameter block_means: (nblocks, ...) array
    :parameter weights: optional (nblocks,) block weights
    :returns: mean, standard error
    """
    block_means = np.asarray(block_means)
    nblocks = block_means.shape[0]
    if nblocks < 2:
        raise ValueError("need at least two blocks to estimate an error")
    if weights is None:
        weights = np.ones(nblocks)
    weights = np.asarray(weights, dtype=float) / np.sum(weights)
    mean = np.einsum("i,i...->...", weights, block_means)
    neff = 1.0 / np.sum(weights**2)
    var = np.einsum("i,i...->...", weights, np.abs(block_means - mean) ** 2) * neff / (neff - 1)
    return mean, np.sqrt(var / neff)
