"""Vector transmission state: host-seeking mosquito compartments.

The emergence engine only needs two calls from this collaborator
(`TransmissionState`): seeding compartments from the target S_v curve, and
rescaling them during fitting. `MosqTransmission` is the reference
implementation, a daily difference-equation model:

  p       = P_A + P_df                      daily survival
  new_inf = P_dif × (N_v − O_v)             newly infected today
  N_v'    = p × N_v + emergence
  O_v'    = p × O_v + new_inf
  S_v'    = p × S_v + new_inf(t − θ_s) × p^θ_s

where θ_s is the extrinsic incubation period in days and P_dif =
P_df × κ (κ = human infectiousness, supplied by the within-host model).
Each day runs in two phases: `update()` (survival + infection, which do
not depend on today's emergence, returns S_v at the end of the day) then
`add_emergence()`.
"""

from __future__ import annotations

from typing import Optional, Protocol

import numpy as np


class TransmissionState(Protocol):
    """Calls the emergence engine makes on the transmission model."""

    def init_state(self, p_A: float, p_df: float, p_dif: float,
                   init_nv_from_sv: float, init_ov_from_sv: float,
                   forced_sv: np.ndarray) -> None:
        ...

    def init_iterate_scale(self, scale_factor: float) -> None:
        ...


class MosqTransmission:
    """Daily N_v / O_v / S_v dynamics for one vector species.

    Checkpoint layout (in order): N_v, O_v, S_v, applied_scale,
    infection cohort ring (θ_s values), p_A, p_df, p_dif.
    """

    def __init__(self, extrinsic_incubation_days: int = 10):
        if extrinsic_incubation_days < 1:
            raise ValueError(
                f"extrinsic_incubation_days must be >= 1, got {extrinsic_incubation_days}"
            )
        self.eip = int(extrinsic_incubation_days)
        self.N_v = 0.0
        self.O_v = 0.0
        self.S_v = 0.0
        self.p_A = float('nan')
        self.p_df = float('nan')
        self.p_dif = float('nan')
        self.applied_scale = 1.0
        # new infections of the last θ_s days, indexed by day mod θ_s
        self._cohorts = np.zeros(self.eip)

    @property
    def survival(self) -> float:
        return self.p_A + self.p_df

    # ── Collaborator interface ────────────────────────────────────────

    def init_state(self, p_A: float, p_df: float, p_dif: float,
                   init_nv_from_sv: float, init_ov_from_sv: float,
                   forced_sv: np.ndarray) -> None:
        """Seed compartments from the target S_v curve at day 0.

        The cohort ring is filled from the last θ_s days of the (periodic)
        target year.
        """
        forced_sv = np.asarray(forced_sv, dtype=np.float64)
        self.p_A = float(p_A)
        self.p_df = float(p_df)
        self.p_dif = float(p_dif)
        self.S_v = float(forced_sv[0])
        self.N_v = init_nv_from_sv * self.S_v
        self.O_v = init_ov_from_sv * self.S_v
        self.applied_scale = 1.0

        n = forced_sv.size
        for lag in range(1, self.eip + 1):
            day = -lag
            sv = forced_sv[day % n]
            self._cohorts[day % self.eip] = (
                self.p_dif * (init_nv_from_sv - init_ov_from_sv) * sv
            )

    def init_iterate_scale(self, scale_factor: float) -> None:
        """Rescale every compartment so magnitudes follow `scale_factor`.

        `scale_factor` is the engine's cumulative scale; only the change
        since the last call is applied, so compartment ratios are preserved.
        """
        if not scale_factor > 0.0:
            raise ValueError(f"scale_factor must be positive, got {scale_factor}")
        ratio = scale_factor / self.applied_scale
        self.N_v *= ratio
        self.O_v *= ratio
        self.S_v *= ratio
        self._cohorts *= ratio
        self.applied_scale = float(scale_factor)

    # ── Daily step ────────────────────────────────────────────────────

    def update(self, day: int, p_df: Optional[float] = None,
               p_dif: Optional[float] = None) -> float:
        """Survival and infection for `day`; returns S_v at the end of it.

        Args:
            day: Simulation day (≥ 0).
            p_df: Today's feeding survival if interventions modify it.
            p_dif: Today's P(feed, survive, get infected); defaults to the
                seeded value scaled like p_df.
        """
        if p_df is None:
            p_df = self.p_df
        if p_dif is None:
            p_dif = self.p_dif * (p_df / self.p_df)
        p = self.p_A + p_df

        slot = day % self.eip
        maturing = self._cohorts[slot]   # infected θ_s days ago
        new_inf = p_dif * (self.N_v - self.O_v)

        self.N_v = p * self.N_v
        self.O_v = p * self.O_v + new_inf
        self.S_v = p * self.S_v + maturing * p ** self.eip
        self._cohorts[slot] = new_inf
        return self.S_v

    def add_emergence(self, emergence: float) -> None:
        self.N_v += emergence

    # ── Checkpointing ────────────────────────────────────────────────

    def checkpoint_write(self, writer) -> None:
        writer.write_float(self.N_v)
        writer.write_float(self.O_v)
        writer.write_float(self.S_v)
        writer.write_float(self.applied_scale)
        writer.write_array(self._cohorts)
        writer.write_float(self.p_A)
        writer.write_float(self.p_df)
        writer.write_float(self.p_dif)

    def checkpoint_read(self, reader) -> None:
        self.N_v = reader.read_float()
        self.O_v = reader.read_float()
        self.S_v = reader.read_float()
        self.applied_scale = reader.read_float()
        self._cohorts = reader.read_array(self.eip)
        self.p_A = reader.read_float()
        self.p_df = reader.read_float()
        self.p_dif = reader.read_float()


def steady_state_ratios(p_A: float, p_df: float, p_dif: float,
                        eip: int) -> tuple:
    """(N_v/S_v, O_v/S_v) at equilibrium with constant emergence."""
    p = p_A + p_df
    o_over_n = p_dif / (1.0 - p + p_dif)
    s_over_n = p ** eip * p_dif * (1.0 - o_over_n) / (1.0 - p)
    return 1.0 / s_over_n, o_over_n / s_over_n

