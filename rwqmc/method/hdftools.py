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


def append_hdf(f, data, attr=None):
    """
    Append one row per key of data to an open h5py file, creating resizable
    datasets the first time a key is seen. attr goes into the file attributes.
    """
    for k, it in (attr or {}).items():
        f.attrs[k] = it
    for k, it in data.items():
        itnp = np.asarray(it)
        if k not in f.keys():
            f.create_dataset(
                k, (0, *itnp.shape), maxshape=(None, *itnp.shape), dtype=itnp.dtype
            )
        n = f[k].shape[0]
        f[k].resize((n + 1, *f[k].shape[1:]))
        f[k][n] = itnp
