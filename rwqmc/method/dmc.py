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
import numpy as np
import h5py
import rwqmc.method.mc as mc
import rwqmc.method.hdftools as hdftools
from rwqmc.config import make_config
from rwqmc.errors import PopulationCollapse
from rwqmc.method.metropolis import metropolis_step
from rwqmc.method.population import Population
from rwqmc.observables.blocking import BlockAccumulator

DMC_DEFAULTS = dict(drift_cutoff=10.0, fixed_node=True)


def clamp_energy(eloc, e_ref, branchcut):
    """
    Local energies limited to [e_ref - branchcut, e_ref + branchcut].
    A non-finite local energy is set to the upper limit, so the walker loses weight.

    :returns: clamped energies, boolean mask of the non-finite entries
    """
    diverged = ~np.isfinite(eloc)
    e = np.where(diverged, e_ref + branchcut, eloc)
    return np.clip(e, e_ref - branchcut, e_ref + branchcut), diverged


def weight_factor(eloc_old, eloc_new, e_trial, tau, energy_estimator="symmetric"):
    r"""
    :math:`\exp(-\tau (\bar{E} - E_T))`, where :math:`\bar{E}` is the average of the
    old and new (clamped) local energies, or just the new one for energy_estimator="new".
    """
    if energy_estimator == "symmetric":
        e = 0.5 * (eloc_old + eloc_new)
    else:
        e = eloc_new
    return np.exp(-tau * (e - e_trial))


def dmc_propagate(
    wf,
    walkers,
    tstep,
    e_trial,
    e_ref,
    branchcut,
    nsteps,
    accumulators,
    ekey=("energy", "total"),
    energy_estimator="symmetric",
    effective_tstep=False,
    move="drift",
    drift_cutoff=10.0,
    fixed_node=True,
):
    """
    Propagate DMC walkers for nsteps without branching.

    :parameter wf: A Wave function-like class. recompute(), gradient(), and updateinternals() are used, as well as anything (such as laplacian() ) used by accumulators
    :parameter walkers: Walkers; coordinates, weights, ages, and local energies are updated in place
    :parameter accumulators: A dictionary of functor objects that take in (configs,wf) and return a dictionary of per-walker quantities
    :parameter ekey: tuple of strings; energy is needed for DMC weights. Access total energy by accumulators[ekey[0]](configs, wf)[ekey[1]]
    :returns: (block, stats, walkers)
      block: BlockAccumulator with the weighted samples of every step

      stats: dictionary with the acceptance, number of diverged evaluations, and the sum over steps of the normalization (total weight per walker)

      walkers: the propagated walkers
    """
    if accumulators is None or ekey[0] not in accumulators:
        raise ValueError("Need an energy accumulator for DMC")
    configs = walkers.configs
    nconfig = len(walkers)
    if nconfig == 0:
        return BlockAccumulator(), {"acceptance": 0.0, "ndiverged": 0, "weight": 0.0}, walkers
    wf.recompute(configs)

    energydat = accumulators[ekey[0]](configs, wf)
    eloc, diverged = clamp_energy(np.real(energydat[ekey[1]]), e_ref, branchcut)
    block = BlockAccumulator()
    stats = {"acceptance": 0.0, "ndiverged": int(np.count_nonzero(diverged)), "weight": 0.0}

    for _ in range(nsteps):
        res = metropolis_step(
            wf, configs, walkers.rng, tstep, move=move, fixed_node=fixed_node, drift_cutoff=drift_cutoff
        )
        walkers.age += 1

        elocold = eloc
        energydat = accumulators[ekey[0]](configs, wf)
        walkers.eloc = np.real(energydat[ekey[1]])
        eloc, diverged = clamp_energy(walkers.eloc, e_ref, branchcut)

        tau = tstep
        if effective_tstep:
            with np.errstate(divide="ignore", invalid="ignore"):
                tdamp = np.where(res["r2_proposed"] > 0, res["r2_accepted"] / res["r2_proposed"], 0.0)
            tau = tstep * tdamp
        walkers.weights *= weight_factor(elocold, eloc, e_trial, tau, energy_estimator)

        data = {}
        for k, accumulator in accumulators.items():
            dat = accumulator(configs, wf) if k != ekey[0] else energydat
            data.update({k + m: it for m, it in dat.items()})
        block.add(data, walkers.weights)

        stats["acceptance"] += np.sum(res["acceptance"])
        stats["ndiverged"] += res["ndiverged"] + int(np.count_nonzero(diverged))
        stats["weight"] += np.sum(walkers.weights) / nconfig
    walkers.update_wavefunction(wf)
    return block, stats, walkers


def dmc_propagate_parallel(wf, walkers, client, npartitions, *args, **kwargs):
    """Parallelizes calls to dmc_propagate by splitting the walkers.

    Each partition carries its own random streams and its own copy of the wave
    function. The accumulators are summed, so the block averages equal the
    serial ones. The normalization sums are reweighted by the partition sizes.
    Empty partitions, which occur when there are fewer walkers than partitions,
    are not submitted.
    """
    parts = [part for part in walkers.split(npartitions) if len(part) > 0]
    runs = [client.submit(dmc_propagate, copy.deepcopy(wf), part, *args, **kwargs) for part in parts]
    allresults = [r.result() for r in runs]
    walkers.join([res[2] for res in allresults])
    block = BlockAccumulator()
    stats = {"acceptance": 0.0, "ndiverged": 0, "weight": 0.0}
    for (blk, st, _), part in zip(allresults, parts):
        block.merge(blk)
        stats["acceptance"] += st["acceptance"]
        stats["ndiverged"] += st["ndiverged"]
        stats["weight"] += st["weight"] * len(part) / len(walkers)
    return block, stats, walkers


def branch_stochastic(walkers, max_copies=3, min_weight=0.0):
    """
    Branch walkers by stochastic rounding of their weights.

    Walker i turns into min(floor(w_i + u_i), max_copies) walkers, where u_i is uniform
    in [0, 1) and drawn from the walker's own stream. Walkers with weight at or below
    min_weight, or a non-finite weight, are removed. The expected number of copies equals
    the weight as long as it is below max_copies. Copies keep the age of their parent and
    get new random streams; all weights are reset to 1.

    :raises PopulationCollapse: if no walker survives
    :returns: dictionary with branching statistics
    """
    w = walkers.weights
    u = walkers.rng.random()
    alive = w > min_weight
    with np.errstate(invalid="ignore"):
        ncopies = np.where(alive, np.minimum(np.floor(w + u), max_copies), 0).astype(int)
    ntotal = int(np.sum(ncopies))
    if ntotal == 0:
        raise PopulationCollapse(f"no walkers survived branching of {len(w)} walkers")
    nclamped = int(np.count_nonzero(alive & (w + u >= max_copies + 1)))
    if nclamped > 0:
        logging.warning(f"{nclamped} walkers reached the maximum of {max_copies} copies")
    newinds = np.repeat(np.arange(len(w)), ncopies)
    walkers.resample(newinds)
    walkers.weights = np.ones(ntotal)
    return {
        "max branches": int(np.max(ncopies)),
        "Number of walkers killed": int(np.count_nonzero(ncopies == 0)),
    }


def branch_comb(walkers):
    """
    Perform branching on a set of walkers using the 'stochastic comb'

    Walkers are resampled with probability proportional to the weights, and the new weights are all set to be equal to the average weight.
    The number of walkers does not change.

    :parameter walkers: Walkers, resampled in place
    :returns: dictionary with branching statistics
    """
    nconfig = len(walkers)
    weights = walkers.weights
    if not np.all(np.isfinite(weights)):
        raise PopulationCollapse("non-finite walker weights")
    if np.any(weights > 2.0):
        logging.warning("Some weights are larger than 2")
    probability = np.cumsum(weights)
    wtot = probability[-1]
    if wtot <= 0:
        raise PopulationCollapse("total walker weight is zero")

    base = walkers.rng.shared_random() * wtot
    newinds = np.searchsorted(
        probability, (base + np.linspace(0, wtot, nconfig, endpoint=False)) % wtot, side="right"
    )
    unique, counts = np.unique(newinds, return_counts=True)

    walkers.resample(newinds)
    walkers.weights = np.full(nconfig, wtot / nconfig)
    return {
        "max branches": int(np.max(counts)),
        "Number of walkers killed": nconfig - unique.shape[0],
    }


def branch(walkers, config):
    if config.branching == "comb":
        return branch_comb(walkers)
    return branch_stochastic(walkers, config.max_copies, config.min_weight)


def dmc_file(hdf_file, data, attr, walkers):
    if hdf_file is not None:
        with h5py.File(hdf_file, "a") as hdf:
            if "configs" not in hdf.keys():
                walkers.initialize_hdf(hdf)
            hdftools.append_hdf(hdf, data, attr)
            walkers.to_hdf(hdf)


def evaluate_energy_worker(configs, wf, en):
    wf.recompute(configs)
    return en(configs, wf)


def evaluate_energies(wf, configs, en, client, npartitions):
    if client is None:
        return evaluate_energy_worker(configs, wf, en)

    else:
        config = [c for c in configs.split(npartitions) if c.configs.shape[0] > 0]
        runs = [client.submit(evaluate_energy_worker, conf, copy.deepcopy(wf), en) for conf in config]
        ret = {}
        data = [r.result() for r in runs]
        for k in data[0].keys():
            ret[k] = np.concatenate([d[k] for d in data])
        return ret


def initialize_population(wf, walkers, config, accumulators, ekey, client, npartitions, verbose):
    """VMC warmup of the starting configurations; sets the trial energy and the energy spread."""
    if config.vmc_warmup > 0:
        mc.vmc(
            wf,
            walkers,
            accumulators={},
            nblocks=config.vmc_warmup,
            nsteps_per_block=config.nsteps_per_block,
            seed=config.seed,
            client=client,
            npartitions=npartitions,
            verbose=verbose,
        )
    en = evaluate_energies(wf, walkers.configs, accumulators[ekey[0]], client, npartitions)[ekey[1]]
    walkers.eloc = np.real(en)
    finite = np.isfinite(walkers.eloc)
    if not np.any(finite):
        raise PopulationCollapse("no walker has a finite local energy after VMC warmup")
    eref = np.mean(walkers.eloc[finite])
    esigma = np.std(walkers.eloc[finite])
    if verbose:
        print("eref start", eref, "esigma", esigma)
    return Population(walkers, target=config.nconfig, e_trial=eref, e_ref=eref, esigma=esigma)


def rundmc(
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
    """
    Run DMC

    The run goes through three phases. While initializing, vmc_warmup VMC blocks
    equilibrate the starting configurations and set the trial energy. The first
    nwarmup_blocks DMC blocks are equilibrating: the trial energy feedback is on, but
    the block averages are not returned. The following blocks are sampling blocks.

    Each block takes nsteps_per_block steps, branching every branchtime steps. After each
    branching the trial energy is updated from the population-weighted local energy and
    the population size.

    :parameter wf: A Wave function-like class. recompute(), gradient(), and updateinternals() are used, as well as anything (such as laplacian() ) used by accumulators
    :parameter configs: (nconfig, nelec, 3) - initial coordinates, or a Walkers object
    :parameter accumulators: A dictionary of functor objects that take in (configs,wf) and return a dictionary of per-walker quantities to be averaged.
    :parameter config: RunConfig; any RunConfig field may also be given as a keyword argument.
    :parameter ekey: tuple of strings; energy is needed for DMC weights. Access total energy by accumulators[ekey[0]](configs, wf)[ekey[1]]
    :parameter verbose: Print out step information
    :parameter str hdf_file: Hdf_file to store the output of every block and the walkers, for restarting.
    :parameter str continue_from: Hdf_file to continue the calculation from.
    :parameter client: an object with submit() functions that return futures
    :parameter int npartitions: the number of workers to submit at a time
    :parameter stop_event: object with is_set(); the run stops cleanly after the block in which it is set.
    :raises PopulationCollapse: if every walker dies
    :returns: (df, configs, weights)
      df: A dictionary of arrays, one entry per sampling block, with the weighted block averages and the controller state.

      configs: The final coordinates (or the walkers, if walkers were passed in).

      weights: The final weights from this calculation
    """
    config = make_config(config, defaults=DMC_DEFAULTS, **kwargs)
    if accumulators is None or ekey[0] not in accumulators:
        raise ValueError("Need an energy accumulator for DMC")
    walkers = mc.as_walkers(configs, seed=config.seed)

    # Don't continue onto a file that's already there.
    if continue_from is not None and hdf_file is not None and os.path.isfile(hdf_file):
        raise RuntimeError(
            f"continue_from is set but hdf_file={hdf_file} already exists! Delete or rename {hdf_file} and try again."
        )

    # Restart if hdf_file is there
    if continue_from is None and hdf_file is not None and os.path.isfile(hdf_file):
        continue_from = hdf_file

    blockoffset = 0
    if continue_from is not None:
        with h5py.File(continue_from, "r") as hdf:
            blockoffset = int(hdf["block"][-1]) + 1
            walkers.load_hdf(hdf, seed=mc.restart_seed(config.seed, blockoffset))
            population = Population(walkers)
            population.load_state(hdf)
        walkers.eloc = np.real(
            evaluate_energies(wf, walkers.configs, accumulators[ekey[0]], client, npartitions)[ekey[1]]
        )
        if verbose:
            print(f"Restarting calculation {continue_from} from block {blockoffset}")
    else:
        population = initialize_population(
            wf, walkers, config, accumulators, ekey, client, npartitions, verbose
        )

    propagate_kws = dict(
        ekey=ekey,
        energy_estimator=config.energy_estimator,
        effective_tstep=config.effective_tstep,
        move=config.move,
        drift_cutoff=config.drift_cutoff,
        fixed_node=config.fixed_node,
    )
    ncycles = int(np.ceil(config.nsteps_per_block / config.branchtime))
    nblocks_total = config.nwarmup_blocks + config.nblocks
    if blockoffset >= nblocks_total:
        logging.warning(f"blockoffset {blockoffset} >= {nblocks_total} blocks; no steps will be run.")

    df = []
    for block in range(blockoffset, nblocks_total):
        population.set_phase(block, config.nwarmup_blocks)
        blockacc = BlockAccumulator()
        stats = {"acceptance": 0.0, "ndiverged": 0, "weight": 0.0}
        branch_info = {"max branches": 0, "Number of walkers killed": 0}
        nsamples = 0
        for _ in range(ncycles):
            branchcut = config.branchcut_start * population.esigma
            args = (
                config.tstep,
                population.e_trial,
                population.e_ref,
                branchcut,
                config.branchtime,
                accumulators,
            )
            if client is None:
                blk, st, walkers = dmc_propagate(wf, walkers, *args, **propagate_kws)
            else:
                blk, st, walkers = dmc_propagate_parallel(
                    wf, walkers, client, npartitions, *args, **propagate_kws
                )
            blockacc.merge(blk)
            nsamples += config.branchtime * len(walkers)
            for k in stats:
                stats[k] += st[k]

            info = branch(walkers, config)
            branch_info["max branches"] = max(branch_info["max branches"], info["max branches"])
            branch_info["Number of walkers killed"] += info["Number of walkers killed"]
            population.step += config.branchtime
            population.update_trial_energy(config.feedback)

        block_avg, weight, _ = mc.block_output(blockacc)
        block_avg["acceptance"] = stats["acceptance"] / nsamples
        block_avg["ndiverged"] = stats["ndiverged"]
        block_avg["weight"] = stats["weight"] / (ncycles * config.branchtime)
        block_avg["nwalkers"] = len(walkers)
        block_avg["weight_std"] = np.std(walkers.weights)
        block_avg["block"] = block
        block_avg["tstep"] = config.tstep
        block_avg.update(branch_info)
        block_avg.update(population.state())
        if stats["ndiverged"] > 0:
            logging.warning(
                f"block {block}: {stats['ndiverged']} non-finite wave function or local energy values were rejected or clamped and left out of the block averages"
            )
        dmc_file(hdf_file, block_avg, dict(tstep=config.tstep), walkers)
        if population.phase == "sampling":
            df.append(block_avg)

        if verbose:
            print(
                "block",
                block,
                population.phase,
                "energy",
                block_avg.get(ekey[0] + ekey[1]),
                "e_trial",
                population.e_trial,
                "nwalkers",
                len(walkers),
            )
            print(branch_info)
        if stop_event is not None and stop_event.is_set():
            logging.warning(f"stop requested; DMC stopped after block {block}")
            break

    df_ret = {}
    if len(df) > 0:
        df_ret = {k: np.asarray([d[k] for d in df]) for k in df[0].keys()}
    ret_configs = walkers if configs is walkers else walkers.configs
    return df_ret, ret_configs, walkers.weights
