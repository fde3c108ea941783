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
import copy
import logging
import time
import numpy as np
import h5py
import rwqmc.method.hdftools as hdftools
from rwqmc.config import make_config
from rwqmc.configurations.coord import OpenConfigs
from rwqmc.configurations.walkers import Walkers
from rwqmc.method.metropolis import metropolis_step
from rwqmc.observables.blocking import BlockAccumulator

VMC_DEFAULTS = dict(drift_cutoff=1.0, fixed_node=False)


def initial_guess(mol, nconfig, r=1.0, seed=None):
    """Generate an initial guess by distributing electrons near atoms
    proportional to their charge.

    assign electrons to atoms based on atom charges
    assign the minimum number first, and assign the leftover ones randomly
    this algorithm chooses atoms *with replacement* to assign leftover electrons

    :parameter mol: A PySCF-like molecule object. Should have atom_charges(), atom_coords(), and nelec
    :parameter nconfig: How many configurations to generate.
    :parameter r: How far from the atoms to distribute the electrons
    :parameter seed: seed for the random placement
    :returns: (nconfig,nelectrons,3) electron positions randomly distributed near the atoms.
    :rtype: OpenConfigs
    """
    rng = np.random.default_rng(seed)
    epos = np.zeros((nconfig, np.sum(mol.nelec), 3))
    wts = mol.atom_charges()
    wts = wts / np.sum(wts)

    for s in [0, 1]:
        neach = np.array(np.floor(mol.nelec[s] * wts), dtype=int)
        nassigned = np.sum(neach)
        totleft = int(mol.nelec[s] - nassigned)
        ind0 = s * mol.nelec[0]
        epos[:, ind0 : ind0 + nassigned, :] = np.repeat(mol.atom_coords(), neach, axis=0)
        if totleft > 0:
            inds = np.argpartition(rng.random((nconfig, len(wts))), totleft, axis=1)[:, :totleft]
            epos[:, ind0 + nassigned : ind0 + mol.nelec[s], :] = mol.atom_coords()[inds]

    epos += r * rng.standard_normal(epos.shape)
    return OpenConfigs(epos)


def gaussian_guess(nconfig, nparticles, ndim=3, scale=1.0, center=None, seed=None):
    """Particles normally distributed about center, for model systems without atoms."""
    rng = np.random.default_rng(seed)
    epos = scale * rng.standard_normal((nconfig, nparticles, ndim))
    if center is not None:
        epos += np.asarray(center)
    return OpenConfigs(epos)


def restart_seed(seed, blockoffset):
    """Streams for a continued run depend on the seed and the block the run restarts from."""
    if seed is None:
        return None
    return np.random.SeedSequence([seed, blockoffset])


def as_walkers(configs, seed=None):
    if isinstance(configs, Walkers):
        return configs
    return Walkers(configs, seed=seed)


def vmc_file(hdf_file, data, attr, walkers):
    if hdf_file is not None:
        with h5py.File(hdf_file, "a") as hdf:
            if "configs" not in hdf.keys():
                walkers.initialize_hdf(hdf)
            hdftools.append_hdf(hdf, data, attr)
            walkers.to_hdf(hdf)


def vmc_worker(wf, walkers, tstep, nsteps, accumulators, move="drift", drift_cutoff=1.0, fixed_node=False, ekey=None):
    """
    Run VMC for nsteps on one set of walkers.

    :return: (BlockAccumulator with the per-walker samples of every step, dictionary of move statistics, walkers)
    """
    configs = walkers.configs
    wf.recompute(configs)
    block = BlockAccumulator()
    stats = {"acceptance": 0.0, "ndiverged": 0, "move time": 0.0, "accumulator time": 0.0}

    for _ in range(nsteps):
        start_move = time.perf_counter()
        res = metropolis_step(
            wf, configs, walkers.rng, tstep, move=move, fixed_node=fixed_node, drift_cutoff=drift_cutoff
        )
        walkers.age += 1
        stats["acceptance"] += np.sum(res["acceptance"])
        stats["ndiverged"] += res["ndiverged"]
        start_average = time.perf_counter()

        for k, accumulator in accumulators.items():
            dat = accumulator(configs, wf)
            block.add({k + m: it for m, it in dat.items()}, walkers.weights)
            if ekey is not None and k == ekey[0]:
                walkers.eloc = np.real(dat[ekey[1]])
        end_average = time.perf_counter()
        stats["move time"] += start_average - start_move
        stats["accumulator time"] += end_average - start_average
    walkers.update_wavefunction(wf)
    return block, stats, walkers


def vmc_parallel(wf, walkers, tstep, nsteps_per_block, accumulators, client, npartitions, **kwargs):
    """
    Split the walkers into npartitions, run vmc_worker on each through client.submit,
    and merge the results. Each partition gets its own copy of the wave function.
    """
    parts = [part for part in walkers.split(npartitions) if len(part) > 0]
    runs = [
        client.submit(vmc_worker, copy.deepcopy(wf), part, tstep, nsteps_per_block, accumulators, **kwargs)
        for part in parts
    ]
    allresults = [r.result() for r in runs]
    walkers.join([res[2] for res in allresults])
    block = BlockAccumulator()
    stats = {}
    for blk, st, _ in allresults:
        block.merge(blk)
        for k, v in st.items():
            stats[k] = stats.get(k, 0) + v
    return block, stats, walkers


def block_output(block, prefix_var="_variance"):
    means, variances, weight, nsamples = block.finish()
    out = dict(means)
    for k, v in variances.items():
        out[k + prefix_var] = v
    return out, weight, nsamples


def vmc(
    wf,
    configs,
    accumulators=None,
    config=None,
    ekey=("energy", "total"),
    verbose=False,
    hdf_file=None,
    continue_from=None,
    client=None,
    npartitions=None,
    stop_event=None,
    **kwargs,
):
    """Run a Monte Carlo sample of a given wave function.

    :parameter wf: trial wave function for VMC
    :type wf: a wave-function-like object
    :parameter configs: initial coordinates, (nconfig, nparticles, ndim). If a Walkers object is given,
      its random streams are used and it is returned; otherwise walkers are created with config.seed and
      the coordinates are returned.
    :parameter accumulators: A dictionary of functor objects that take in (configs,wf) and return a dictionary of per-walker quantities to be averaged. If None, then the coordinates will only be propagated with acceptance information.
    :parameter config: RunConfig; any RunConfig field may also be given as a keyword argument.
      nblocks includes the blocks from previous calls when a calculation is continued.
    :parameter ekey: where to find the local energy among the accumulator outputs, stored on the walkers.
    :parameter boolean verbose: Print out step information
    :parameter str hdf_file: Hdf_file to store vmc output.
    :parameter str continue_from: Hdf_file to continue vmc calculation from.
    :parameter client: an object with submit() functions that return futures
    :parameter int npartitions: the number of workers to submit at a time
    :parameter stop_event: object with is_set(); the run stops cleanly after the block in which it is set.
    :returns: (df, configs)
       df: A dictionary of arrays, one entry per block, with the block means of all accumulator outputs,
       their per-sample variances (key + "_variance"), and acceptance information.

       configs: The final coordinates (or walkers) from this calculation.
    """
    config = make_config(config, defaults=VMC_DEFAULTS, **kwargs)
    walkers = as_walkers(configs, seed=config.seed)

    if accumulators is None:
        accumulators = {}
        if verbose:
            print("WARNING: running VMC with no accumulators")

    # Restart
    blockoffset = 0
    if continue_from is None:
        continue_from = hdf_file
    elif not os.path.isfile(continue_from):
        raise RuntimeError("cannot continue from {0}; the file does not exist!".format(continue_from))
    elif hdf_file is not None and os.path.isfile(hdf_file):
        raise RuntimeError(
            "continue_from is not None but hdf_file={0} already exists! Delete or rename {0} and try again.".format(
                hdf_file
            )
        )
    if continue_from is not None and os.path.isfile(continue_from):
        with h5py.File(continue_from, "r") as hdf:
            if "configs" in hdf.keys():
                blockoffset = int(hdf["block"][-1]) + 1
                walkers.load_hdf(hdf, seed=restart_seed(config.seed, blockoffset))
                if verbose:
                    print(f"Restarting calculation {continue_from} from block {blockoffset}")

    worker_kws = dict(
        move=config.move, drift_cutoff=config.drift_cutoff, fixed_node=config.fixed_node, ekey=ekey
    )
    df = []
    if blockoffset >= config.nblocks:
        logging.warning(
            f"blockoffset {blockoffset} >= nblocks {config.nblocks}; no steps will be run."
        )
    for block in range(blockoffset, config.nblocks):
        if verbose:
            print("-", end="", flush=True)
        if client is None:
            blk, stats, walkers = vmc_worker(
                wf, walkers, config.tstep, config.nsteps_per_block, accumulators, **worker_kws
            )
        else:
            blk, stats, walkers = vmc_parallel(
                wf, walkers, config.tstep, config.nsteps_per_block, accumulators, client, npartitions, **worker_kws
            )
        block_avg, _, nsamples = block_output(blk)
        nsamples = config.nsteps_per_block * len(walkers)
        block_avg["acceptance"] = stats["acceptance"] / nsamples
        block_avg["ndiverged"] = stats["ndiverged"]
        block_avg["move time"] = stats["move time"]
        block_avg["accumulator time"] = stats["accumulator time"]
        block_avg["block"] = block
        block_avg["nconfig"] = nsamples
        if stats["ndiverged"] > 0:
            logging.warning(
                f"block {block}: rejected {stats['ndiverged']} proposals with non-finite wave function values"
            )
        vmc_file(hdf_file, block_avg, dict(tstep=config.tstep), walkers)
        df.append(block_avg)
        if stop_event is not None and stop_event.is_set():
            logging.warning(f"stop requested; VMC stopped after block {block}")
            break
    if verbose:
        print("vmc done")

    df_return = {}
    if len(df) > 0:
        for k in df[0].keys():
            df_return[k] = np.asarray([d[k] for d in df])
    return df_return, (walkers if isinstance(configs, Walkers) else walkers.configs)
