"""vectorsim: Vector emergence calibration and decay-based intervention effects.

A deterministic, seeded model of malaria vector populations coupling:
  - Seasonal emergence synthesized from log-Fourier coefficients of EIR
  - Fixed-point calibration of emergence scale and phase against the
    sporozoite rate produced by the vector transmission model
  - Decay-function intervention effects (IRS, larviciding) with
    per-deployment heterogeneity
  - Versioned, ordered-field checkpointing of all mutable state
"""

__version__ = "0.1.0"
