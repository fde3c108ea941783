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

import dataclasses
import numpy as np
from rwqmc.errors import ConfigurationError

BRANCHING = ("stochastic", "comb")
ENERGY_ESTIMATORS = ("symmetric", "new")
MOVES = ("drift", "gaussian")


@dataclasses.dataclass(frozen=True)
class RunConfig:
    """Parameters of a Monte Carlo run. They are validated on construction and
    cannot change once the run has started.

    :parameter float tstep: time step for move proposals. In DMC this introduces time step error.
    :parameter int nblocks: total number of blocks, including blocks from previous calls when restarting. In DMC these are the sampling blocks that follow the nwarmup_blocks.
    :parameter int nsteps_per_block: steps averaged into each block.
    :parameter int nwarmup_blocks: DMC blocks run with feedback on but flagged as equilibration.
    :parameter int vmc_warmup: VMC blocks used to initialize the DMC population.
    :parameter int nconfig: target population size. If None, the number of starting configurations is used.
    :parameter int seed: seed for the per-walker random streams. None draws fresh entropy.
    :parameter float feedback: damping constant of the trial energy controller.
    :parameter int branchtime: steps between branching events.
    :parameter float branchcut_start: cutoff on the local energy deviation, in units of the VMC energy spread.
    :parameter int max_copies: largest number of walkers a single walker may turn into at one branching.
    :parameter float min_weight: walkers with weight at or below this value die at branching.
    :parameter str branching: "stochastic" (integer replication) or "comb" (fixed population).
    :parameter str energy_estimator: "symmetric" averages the old and new local energy in the weight, "new" uses only the new one.
    :parameter bool effective_tstep: scale the time step in the weight by the ratio of accepted to proposed squared displacements.
    :parameter str move: "drift" for importance-sampled drift-diffusion moves, "gaussian" for symmetric moves.
    :parameter float drift_cutoff: maximum magnitude of the drift vector for each particle.
    :parameter bool fixed_node: reject moves that change the sign of the wave function.
    """

    tstep: float = 0.5
    nblocks: int = 10
    nsteps_per_block: int = 10
    nwarmup_blocks: int = 0
    vmc_warmup: int = 10
    nconfig: int = None
    seed: int = None
    feedback: float = 1.0
    branchtime: int = 1
    branchcut_start: float = 10.0
    max_copies: int = 3
    min_weight: float = 0.0
    branching: str = "stochastic"
    energy_estimator: str = "symmetric"
    effective_tstep: bool = False
    move: str = "drift"
    drift_cutoff: float = None
    fixed_node: bool = None

    def __post_init__(self):
        self.validate()

    def validate(self):
        def positive(name, integer=False):
            val = getattr(self, name)
            if integer and int(val) != val:
                raise ConfigurationError(f"{name} must be an integer, got {val}")
            if not np.isfinite(val) or val <= 0:
                raise ConfigurationError(f"{name} must be positive, got {val}")

        positive("tstep")
        positive("nsteps_per_block", integer=True)
        positive("branchtime", integer=True)
        positive("max_copies", integer=True)
        positive("feedback")
        positive("branchcut_start")
        if self.nconfig is not None:
            positive("nconfig", integer=True)
        if self.drift_cutoff is not None:
            positive("drift_cutoff")
        for name in ["nblocks", "nwarmup_blocks", "vmc_warmup"]:
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} cannot be negative")
        if self.min_weight < 0:
            raise ConfigurationError("min_weight cannot be negative")
        for name, allowed in [
            ("branching", BRANCHING),
            ("energy_estimator", ENERGY_ESTIMATORS),
            ("move", MOVES),
        ]:
            if getattr(self, name) not in allowed:
                raise ConfigurationError(
                    f"{name}={getattr(self, name)!r}; valid options are {allowed}"
                )

    def replace(self, **kwargs):
        return dataclasses.replace(self, **kwargs)


def make_config(config=None, defaults=None, **kwargs):
    """Build a RunConfig from an existing one and/or keyword arguments.

    defaults are applied only to fields left as None, so that VMC and DMC can
    pick different drift cutoffs and node handling.
    """
    if config is None:
        config = RunConfig(**kwargs)
    elif kwargs:
        config = config.replace(**kwargs)
    if defaults:
        unset = {k: v for k, v in defaults.items() if getattr(config, k) is None}
        if unset:
            config = config.replace(**unset)
    return config
