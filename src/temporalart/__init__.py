"""
temporalart: time-scale separated dynamics of Adaptive Resonance Theory

This package implements and validates the temporal side of ART as described in:
- Grossberg (1973), shunting on-center off-surround networks
- Kazerounian & Grossberg (2014), habituative transmitters and STORE 2
  item-order working memory
- Grossberg & Kazerounian (2016), LIST PARSE masking fields

Four processes run on separate time scales, from fast to slow:
- Working memory (10-100 ms): item activity with a primacy gradient
- Masking field (50-500 ms): list-chunk competition
- Transmitter gates (0.5-5 s): habituation
- Weights (1-10 s): instar learning of chunk templates

A fixed-step forward Euler integrator advances each tier at its own rate, and
a validation harness checks the results against closed-form equations and
published behavioural findings.
"""

__version__ = "0.1.0"
