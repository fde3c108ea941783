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

import pandas as pd
import numpy as np


def reblock(df, nblocks, weights=None):
    """
    Average consecutive entries of df into nblocks new blocks.

    :param df: data to reblock, one row per original block or step
    :type df: pandas DataFrame, Series, or numpy array
    :param int nblocks: number of resulting blocks
    :param weights: weights used to average data, one per row
    :return: reblocked data of length nblocks, same type as df
    """
    if weights is None:
        weights = np.ones(len(df))
    weights = np.asarray(weights, dtype=float)
    if isinstance(df, pd.DataFrame):
        return pd.DataFrame(
            {col: _weighted_blocks(df[col].values, nblocks, weights) for col in df.columns}
        )
    if isinstance(df, pd.Series):
        return pd.Series(_weighted_blocks(df.values, nblocks, weights), name=df.name)
    if isinstance(df, np.ndarray):
        return np.stack(_weighted_blocks(df, nblocks, weights), axis=0)
    raise TypeError("type {0} not recognized by reblock".format(type(df)))


def _weighted_blocks(array, nblocks, weights):
    out = []
    for v, w in zip(np.array_split(array, nblocks, axis=0), np.array_split(weights, nblocks)):
        # tensordot handles vector-valued rows
        out.append(np.tensordot(w, v, axes=(0, 0)) / np.sum(w))
    return out


def reblock_summary(df, nblocks=(16, 32, 48, 64), weights=None):
    """Mean and standard error after reblocking into each of nblocks."""
    if np.ndim(nblocks) == 0:
        return pd.DataFrame(_summary(df, nblocks, weights))
    return pd.DataFrame([_summary(df, nb, weights) for nb in nblocks if nb < len(df)])


def _summary(df, nblocks, weights):
    rb = reblock(df, nblocks, weights)
    if isinstance(rb, pd.Series):
        rb = rb.values
    serr = rb.std(axis=0, ddof=0) / np.sqrt(len(rb) - 1)
    return {
        "mean": rb.mean(axis=0),
        "standard error": serr,
        "standard error error": serr / np.sqrt(2 * (len(rb) - 1)),
        "nblocks": nblocks,
        "nsteps_per_block": len(df) // nblocks,
    }


def reblock_by2(df, ntimes, c=None):
    """
    Halve the data ntimes by averaging neighboring pairs, following
    H. Flyvbjerg and H. G. Petersen, J. Chem. Phys. 91, 461 (1989).
    A trailing odd row is dropped at each level.
    """
    newdf = df.copy() if c is None else df[c].copy()
    for _ in range(ntimes):
        n = newdf.shape[0] // 2
        newdf = (newdf[: 2 * n : 2] + newdf[1 : 2 * n : 2].values) / 2
    return newdf


def opt_block(df):
    """
    Optimal number of pair-averaging levels for each column of df.

    The criterion is the one from Wolff and Lee: the smallest level B with
    2**(3B) > 2 n (sigma_B / sigma_0)**4, where sigma_B is the standard error
    after B halvings and n is the original number of rows.
    """
    ndata, nvariables = df.shape[:2]
    serr0 = df.sem(axis=0).values
    optimal = np.full(nvariables, np.nan)
    levels = []
    newdf = df.copy()
    while newdf.shape[0] > 1:
        levels.append(newdf.sem(axis=0).values)
        newdf = reblock_by2(newdf, 1)
    for iblock in reversed(range(len(levels))):
        satisfied = 2 ** (3 * iblock) >= 2 * ndata * (levels[iblock] / serr0) ** 4
        optimal[satisfied] = iblock
    return optimal


def optimally_reblocked(data):
    """
    Reblock a DataFrame to the largest optimal level of its columns and report
    mean, standard error, and the error of the standard error for each column.
    """
    n_reblock = int(np.nanmax(opt_block(data)))
    rb_data = reblock_by2(data, n_reblock)
    serr = rb_data.sem(axis=0)
    return pd.DataFrame(
        {
            "mean": rb_data.mean(axis=0),
            "standard error": serr,
            "standard error error": serr / np.sqrt(2 * (len(rb_data) - 1)),
            "reblocks": n_reblock,
        }
    )
