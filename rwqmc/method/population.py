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

import logging
import numpy as np

PHASES = ("initializing", "equilibrating", "sampling")


class Population:
    """
    Walkers together with the state of the trial energy controller.

    The controller state belongs to the population object rather than to a module,
    so that independent runs cannot interfere.

    :parameter walkers: Walkers arena
    :parameter int target: target number of walkers
    :parameter float e_trial: trial energy used in the weights of the next steps
    :parameter float e_ref: reference energy; local energies are clamped around it
    :parameter float esigma: spread of the local energy, which sets the clamp scale
    """

    def __init__(self, walkers, target=None, e_trial=0.0, e_ref=None, esigma=1.0):
        self.walkers = walkers
        self.target = len(walkers) if target is None else int(target)
        self.e_trial = e_trial
        self.e_ref = e_trial if e_ref is None else e_ref
        self.esigma = esigma
        self.log_growth = 0.0
        self.step = 0
        self.phase = "initializing"

    def __len__(self):
        return len(self.walkers)

    @property
    def total_weight(self):
        return np.sum(self.walkers.weights)

    def mean_energy(self):
        """Population-weighted mean local energy over walkers with a finite value."""
        w = self.walkers.weights
        finite = np.isfinite(self.walkers.eloc)
        return np.dot(w[finite], self.walkers.eloc[finite]) / np.sum(w[finite])

    def update_trial_energy(self, feedback):
        r"""
        Proportional feedback on the population size,

        .. math:: E_T = \langle E_L \rangle_w - \lambda \ln(W / N_{\rm target})

        If the population grows above the target the trial energy goes down, which
        lowers the weights in the next steps, and vice versa.
        """
        self.e_ref = self.mean_energy()
        self.log_growth = np.log(self.total_weight / self.target)
        self.e_trial = self.e_ref - feedback * self.log_growth
        if len(self.walkers) > 2 * self.target or 2 * len(self.walkers) < self.target:
            logging.warning(
                f"population {len(self.walkers)} is far from target {self.target} at step {self.step}"
            )
        return self.e_trial

    def set_phase(self, block, nwarmup_blocks):
        """Equilibrating for the first nwarmup_blocks DMC blocks, sampling afterwards."""
        self.phase = "equilibrating" if block < nwarmup_blocks else "sampling"
        return self.phase

    def state(self):
        return {
            "e_trial": self.e_trial,
            "e_ref": self.e_ref,
            "esigma": self.esigma,
            "log_growth": self.log_growth,
            "target": self.target,
            "step": self.step,
            "phase": PHASES.index(self.phase),
        }

    def load_state(self, hdf):
        """Restore the controller from the last row of a DMC output file."""
        if "e_trial" not in hdf.keys():
            raise ValueError(
                "Did not find e_trial in the restart file. This may mean that you are trying to restart from a VMC file"
            )
        self.e_trial = float(hdf["e_trial"][-1])
        self.e_ref = float(hdf["e_ref"][-1])
        self.esigma = float(hdf["esigma"][-1])
        self.log_growth = float(hdf["log_growth"][-1])
        self.target = int(hdf["target"][-1])
        self.step = int(hdf["step"][-1])
