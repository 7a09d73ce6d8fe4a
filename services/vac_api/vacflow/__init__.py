"""Steady-state model of the vinyl acetate (VAc) process."""

from .initialization import make_initial_guess
from .residual import residual

__all__ = ["make_initial_guess", "residual"]
