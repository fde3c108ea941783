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


class RandomSource:
    """
    Independent random streams, one per walker.

    The streams are spawned from a single numpy SeedSequence, so stream i depends only
    on the seed and i. Walkers draw their noise from their own stream, which makes a
    trajectory independent of how the walkers are partitioned among workers.

    Walkers created by branching receive streams spawned from the same root; the
    spawn order is the order of the branching pass, which is deterministic.
    """

    def __init__(self, seed=None, nstreams=0):
        if isinstance(seed, np.random.SeedSequence):
            self.root = seed
        else:
            self.root = np.random.SeedSequence(seed)
        self.streams = [np.random.default_rng(s) for s in self.root.spawn(nstreams)]

    @classmethod
    def from_streams(cls, streams, root=None):
        new = cls.__new__(cls)
        new.root = root
        new.streams = list(streams)
        return new

    def __len__(self):
        return len(self.streams)

    def normal(self, scale=1.0, size=()):
        """
        :parameter scale: standard deviation
        :parameter size: shape of the draw for a single walker
        :returns: array (nwalkers, *size), row i drawn from stream i
        """
        size = (size,) if np.isscalar(size) else tuple(size)
        if len(self.streams) == 0:
            return np.zeros((0, *size))
        return np.stack([g.normal(scale=scale, size=size) for g in self.streams])

    def random(self):
        """One uniform number in [0, 1) per walker."""
        return np.asarray([g.random() for g in self.streams])

    def split(self, npartitions):
        """Split into npartitions sources, matching np.array_split of the walker axis."""
        inds = np.array_split(np.arange(len(self.streams)), npartitions)
        return [
            RandomSource.from_streams([self.streams[i] for i in ind], root=None)
            for ind in inds
        ]

    def join(self, sourcelist):
        """Collect the (advanced) streams back from split()."""
        self.streams = [g for s in sourcelist for g in s.streams]

    def resample(self, newinds):
        """
        Reorder streams by newinds (e.g. for DMC branching).
        The first occurrence of an index keeps the original stream; every further
        copy gets a freshly spawned one.
        """
        if self.root is None:
            raise RuntimeError("cannot spawn new streams from a partition; resample the parent")
        newinds = np.asarray(newinds)
        _, first = np.unique(newinds, return_index=True)
        duplicate = np.ones(len(newinds), dtype=bool)
        duplicate[first] = False
        children = iter(self.root.spawn(int(np.count_nonzero(duplicate))))
        self.streams = [
            np.random.default_rng(next(children)) if dup else self.streams[i]
            for i, dup in zip(newinds, duplicate)
        ]

    def shared_random(self):
        """One uniform number for a decision that involves the whole population,
        drawn from a freshly spawned stream so that no walker's stream is consumed."""
        if self.root is None:
            raise RuntimeError("cannot spawn new streams from a partition")
        return np.random.default_rng(self.root.spawn(1)[0]).random()
