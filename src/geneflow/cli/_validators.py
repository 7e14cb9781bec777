"""Shared argparse type validators for CLI parameter bounds checking.

Used as the ``type=`` argument in ``add_argument()`` so invalid values
(``--alpha 2``, ``--permutations 0``) fail at parse time with a clear message.
"""

from __future__ import annotations

import argparse


def _positive_int(value: str) -> int:
    """argparse type for positive integers (> 0)."""
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def _probability(value: str) -> float:
    """argparse type for values in the open interval (0, 1)."""
    fvalue = float(value)
    if not (0 < fvalue < 1):
        raise argparse.ArgumentTypeError(
            f"{value} is not a valid probability (must be in (0, 1))"
        )
    return fvalue


def _fraction(value: str) -> float:
    """argparse type for fractions in the closed interval [0, 1]."""
    fvalue = float(value)
    if not (0 <= fvalue <= 1):
        raise argparse.ArgumentTypeError(f"{value} is not a fraction in [0, 1]")
    return fvalue


def _log_base(value: str) -> float:
    """argparse type for logarithm bases (> 0 and != 1)."""
    fvalue = float(value)
    if fvalue <= 0 or fvalue == 1:
        raise argparse.ArgumentTypeError(f"{value} is not a valid log base (must be > 0 and != 1)")
    return fvalue
