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
import h5py
import scipy.stats
import pandas as pd
import rwqmc.reblock
from rwqmc.method.population import PHASES


def read_opt(fname):
    with h5py.File(fname, "r") as f:
        return pd.DataFrame(
            {
                "energy": f["energy"][...],
                "iteration": f["iteration"][...],
                "error": f["energy_error"][...],
                "fname": [fname] * len(f["energy"]),
            }
        )


def read_mc_output(
    fname,
    warmup=1,
    reblock=None,
    exclude_keys=("configs", "weights", "age", "block", "nconfig", "phase", "wf"),
):
    """
    Mean and standard error of every per-block quantity in a VMC or DMC output file.

    Blocks from the DMC equilibration phase are left out, and then the first
    warmup of the remaining blocks.

    :parameter int reblock: if given, average the blocks into this many larger blocks first
    """
    ret = {"fname": fname, "warmup": warmup, "reblock": reblock}
    with h5py.File(fname, "r") as f:
        keep = slice(None)
        if "phase" in f.keys():
            keep = f["phase"][...] == PHASES.index("sampling")
        for k in f.keys():
            if k not in exclude_keys:
                vals = f[k][...][keep][warmup:]
                if reblock is not None:
                    vals = rwqmc.reblock.reblock(vals, reblock)
                ret[k] = np.mean(vals, axis=0)
                ret[k + "_err"] = scipy.stats.sem(vals, axis=0)
    return ret
