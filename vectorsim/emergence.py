"""Fixed seasonal emergence with fixed-point calibration.

The mapping from a daily emergence curve to the sporozoite rate (S_v) it
produces is only available by running the transmission model. During
warm-up the engine therefore alternates:

  1. run the transmission model (driver) while `update()` records the
     observed S_v into a five-year ring buffer,
  2. `init_iterate()`: compare the averaged observed year against the
     target `forced_sv`, move the emergence scale 60% of the way towards
     the naive correction, re-align its phase by a discretized search, and
     rescale the transmission compartments.

The driver repeats this while `init_iterate()` returns True, up to its own
round limit. After warm-up the emergence curve is frozen; the buffer keeps
recording for monitoring.

State machine:
  UNFITTED → FITTING → {CONVERGED, NO_FITTING_NEEDED,
                        FAILED_DIVERGENT, FAILED_DEGENERATE}
"""

from __future__ import annotations

import logging
import math
from enum import IntEnum
from typing import Optional, Sequence

import numpy as np

from vectorsim.config import DAYS_PER_YEAR
from vectorsim.errors import DegenerateTransmissionError, FittingDivergenceError
from vectorsim.larviciding import Larviciding
from vectorsim.seasonality import exp_idft, find_angle
from vectorsim.transmission import TransmissionState


logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

BUFFER_YEARS = 5
BUFFER_DAYS = BUFFER_YEARS * DAYS_PER_YEAR

DAMPING = 0.6              # fraction of the naive scale correction applied
FIT_TOLERANCE = 0.05       # |factor − 1| accepted as converged
FACTOR_MIN = 1e-6          # sane range for the correction factor
FACTOR_MAX = 1e6
DEGENERATE_SV_SUM = 1e-3   # five-year S_v sum treated as "no transmission"


class FitState(IntEnum):
    UNFITTED = 0
    FITTING = 1
    CONVERGED = 2
    NO_FITTING_NEEDED = 3
    FAILED_DIVERGENT = 4
    FAILED_DEGENERATE = 5


TERMINAL_STATES = frozenset({
    FitState.CONVERGED,
    FitState.NO_FITTING_NEEDED,
    FitState.FAILED_DIVERGENT,
    FitState.FAILED_DEGENERATE,
})


def average_annual(quinquennial: np.ndarray) -> np.ndarray:
    """Mean of same-day-of-year entries over the five buffered years."""
    return quinquennial.reshape(BUFFER_YEARS, DAYS_PER_YEAR).sum(axis=0) / BUFFER_YEARS


class FixedEmergence:
    """Seasonal emergence driven by a target S_v curve.

    Args:
        fourier_coefficients: Log-Fourier coefficients of daily EIR.
        rotate_angle: EIR rotation angle (radians).
        init_nv_from_sv: N_v/S_v ratio used to seed the population.
        init_ov_from_sv: O_v/S_v ratio used to seed the population.
        larviciding: Optional larviciding state reducing emergence.
    """

    def __init__(
        self,
        fourier_coefficients: Sequence[float],
        rotate_angle: float,
        init_nv_from_sv: float,
        init_ov_from_sv: float,
        larviciding: Optional[Larviciding] = None,
    ):
        self.fs_coeffic = np.array(fourier_coefficients, dtype=np.float64)
        self.rotate_angle = float(rotate_angle)
        self.init_nv_from_sv = float(init_nv_from_sv)
        self.init_ov_from_sv = float(init_ov_from_sv)
        self.init_nv0_from_sv = float('nan')
        self.larviciding = larviciding

        self.forced_sv = np.zeros(DAYS_PER_YEAR)
        self.emergence_rate = np.zeros(DAYS_PER_YEAR)
        self.quinquennial_sv = np.zeros(BUFFER_DAYS)
        self.scale_factor = 1.0
        self.shift_angle = 0.0
        self.fit_state = FitState.UNFITTED

    @classmethod
    def from_species(cls, coeffs, rotate_angle: float, prop_infected: float,
                     prop_infectious: float,
                     larviciding: Optional[Larviciding] = None) -> 'FixedEmergence':
        """Seed ratios from the configured infected/infectious proportions."""
        init_nv_from_sv = 1.0 / prop_infectious
        init_ov_from_sv = init_nv_from_sv * prop_infected
        return cls(coeffs, rotate_angle, init_nv_from_sv, init_ov_from_sv,
                   larviciding)

    # ── Setup ─────────────────────────────────────────────────────────

    def init2(self, p_A: float, p_df: float, p_dif: float, eir_to_sv: float,
              transmission: TransmissionState) -> None:
        """Synthesize target S_v and the crude emergence estimate.

        Emergence ≈ (1 − P_A − P_df) × N_v, i.e. what balances daily deaths
        when N_v = init_nv_from_sv × S_v.
        """
        if not eir_to_sv > 0.0:
            raise ValueError(f"eir_to_sv must be positive, got {eir_to_sv}")
        self.init_nv0_from_sv = self.init_nv_from_sv * (1.0 - p_A - p_df)

        # Adding log(c) to a0 scales the synthesized curve by c: EIR → S_v.
        self.fs_coeffic[0] += math.log(eir_to_sv)
        self.forced_sv = exp_idft(self.fs_coeffic, self.rotate_angle)

        transmission.init_state(p_A, p_df, p_dif, self.init_nv_from_sv,
                                self.init_ov_from_sv, self.forced_sv)

        self.emergence_rate = self.forced_sv * self.init_nv0_from_sv
        self.scale_factor = 1.0
        self.shift_angle = 0.0
        self.fit_state = FitState.FITTING

    # ── Daily ─────────────────────────────────────────────────────────

    def intervention_survival(self, day: int) -> float:
        if self.larviciding is None:
            return 1.0
        return self.larviciding.survival_factor(day)

    def update(self, day: int, s_v: float) -> float:
        """Record the day's observed S_v; return the day's emergence."""
        # S_v is the value at the end of the step, hence day + 1
        self.quinquennial_sv[(day + 1) % BUFFER_DAYS] = s_v
        return self.emergence_rate[day % DAYS_PER_YEAR] * self.intervention_survival(day)

    # ── Fitting ───────────────────────────────────────────────────────

    def init_iterate(self, transmission: TransmissionState) -> bool:
        """One fitting step. Returns True while another round is needed.

        Fits S_v only; N_v and O_v predictions move with the fit and would
        be a moving target.

        Raises:
            DegenerateTransmissionError: Observed S_v ≈ 0 but S_v was requested.
            FittingDivergenceError: Correction factor outside (1e-6, 1e6).
        """
        sum_forced = float(self.forced_sv.sum())
        if sum_forced == 0.0:
            self.fit_state = FitState.NO_FITTING_NEEDED
            return False

        avg_annual_sv = average_annual(self.quinquennial_sv)
        sum_observed = float(avg_annual_sv.sum())
        factor = sum_forced / sum_observed if sum_observed > 0.0 else math.inf

        if not FACTOR_MIN < factor < FACTOR_MAX:
            sum_buffer = float(self.quinquennial_sv.sum())
            logger.error(
                "Emergence fitting failed: input S_v %g, simulated S_v %g, "
                "factor %g", sum_forced, sum_buffer / BUFFER_YEARS, factor,
            )
            if factor > FACTOR_MAX and sum_buffer < DEGENERATE_SV_SUM:
                self.fit_state = FitState.FAILED_DEGENERATE
                raise DegenerateTransmissionError()
            self.fit_state = FitState.FAILED_DIVERGENT
            raise FittingDivergenceError(
                f"emergence fitting factor out of bounds: {factor:g} "
                f"(input S_v {sum_forced:g}, simulated S_v "
                f"{sum_buffer / BUFFER_YEARS:g})"
            )

        self.scale_factor += DAMPING * (self.scale_factor * factor - self.scale_factor)

        self.shift_angle += find_angle(self.fs_coeffic, self.rotate_angle, avg_annual_sv)

        self.emergence_rate = exp_idft(self.fs_coeffic, self.rotate_angle - self.shift_angle)
        self.emergence_rate *= self.scale_factor * self.init_nv0_from_sv

        transmission.init_iterate_scale(self.scale_factor)

        logger.debug(
            "Emergence fit: factor %.6f, scale %.6f, shift %.6f rad",
            factor, self.scale_factor, self.shift_angle,
        )
        keep_going = abs(factor - 1.0) > FIT_TOLERANCE
        self.fit_state = FitState.FITTING if keep_going else FitState.CONVERGED
        return keep_going

    # ── Checkpointing ────────────────────────────────────────────────

    def checkpoint_write(self, writer) -> None:
        """Layout: quinquennial_sv[1825], scale_factor, shift_angle,
        forced_sv[365], emergence_rate[365], init_nv0_from_sv, a0 of the
        Fourier coefficients (after the EIR → S_v shift), fit_state, then the
        larviciding block if present."""
        writer.write_array(self.quinquennial_sv)
        writer.write_float(self.scale_factor)
        writer.write_float(self.shift_angle)
        writer.write_array(self.forced_sv)
        writer.write_array(self.emergence_rate)
        writer.write_float(self.init_nv0_from_sv)
        writer.write_float(self.fs_coeffic[0])
        writer.write_int(int(self.fit_state))
        if self.larviciding is not None:
            self.larviciding.checkpoint_write(writer)

    def checkpoint_read(self, reader) -> None:
        self.quinquennial_sv = reader.read_array(BUFFER_DAYS)
        self.scale_factor = reader.read_float()
        self.shift_angle = reader.read_float()
        self.forced_sv = reader.read_array(DAYS_PER_YEAR)
        self.emergence_rate = reader.read_array(DAYS_PER_YEAR)
        self.init_nv0_from_sv = reader.read_float()
        self.fs_coeffic[0] = reader.read_float()
        self.fit_state = FitState(reader.read_int())
        if self.larviciding is not None:
            self.larviciding.checkpoint_read(reader)
