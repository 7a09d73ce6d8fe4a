"""
Steady-state solve.

Two stages.  A sequential pass (``sequential.converge_flowsheet``) walks the
units in flow order and iterates the recycle gas to convergence; that
brings every unit's balances close to zero from a rough start.  The
simultaneous polish is ``scipy.optimize.fsolve`` (MINPACK hybrd, a
Powell-hybrid Newton method with a finite-difference Jacobian) on the
scaled residual, so energy rows in kcal/min and mole-fraction closures
weigh alike.

Convergence is judged on the scaled residual.  Non-convergence and
residual-evaluation errors are reported in the ``SolveResult``, not raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger
from scipy.optimize import fsolve

from .errors import ProcessModelError
from .initialization import make_initial_guess
from .residual import scaled_residual
from .sequential import converge_flowsheet
from .state import PlantState, ProcessParameters


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class SolveResult:
    converged: bool
    iterations: int              # residual evaluations
    residual_norm: float         # infinity-norm of the scaled residual
    x: np.ndarray
    params: ProcessParameters
    message: str = ""
    state: Optional[PlantState] = None
    warnings: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Solver
# ---------------------------------------------------------------------------


def solve_steady_state(
    x0: Optional[Sequence[float]] = None,
    params: Optional[ProcessParameters] = None,
    *,
    xtol: float = 1e-10,
    tol: float = 1e-6,
    max_evaluations: int = 0,
    sequential_passes: int = 200,
) -> SolveResult:
    """
    Solve ``residual(x, params) = 0`` starting from ``x0``.

    Parameters
    ----------
    x0, params : initial state vector and parameters; built with
        ``make_initial_guess()`` when either is omitted.
    xtol : relative step tolerance passed to fsolve.
    tol : infinity-norm of the scaled residual required to call the solve
        converged.
    max_evaluations : residual evaluation limit for the fsolve polish
        (0 allows 20·(n + 1)).
    sequential_passes : pass limit of the sequential presolve; 0 skips it.
    """
    if x0 is None or params is None:
        guess, guess_params = make_initial_guess()
        x0 = guess if x0 is None else x0
        params = guess_params if params is None else params

    x_start = np.array(x0, dtype=float)
    warnings: List[str] = []
    evaluations = 0
    best_x = x_start.copy()
    best_norm = float("inf")

    def func(x: np.ndarray) -> np.ndarray:
        nonlocal evaluations, best_x, best_norm
        evaluations += 1
        res = scaled_residual(x, params)
        norm = float(np.max(np.abs(res)))
        if norm < best_norm:
            best_x, best_norm = np.array(x, dtype=float), norm
        logger.debug("Residual evaluation {}: |r|_inf={:.4e}", evaluations, norm)
        return res

    logger.info("Steady-state solve: {} unknowns", x_start.size)
    try:
        func(x_start)
    except ProcessModelError as e:
        logger.warning("Residual evaluation failed at the starting point: {}", e)
        return SolveResult(
            converged=False,
            iterations=evaluations,
            residual_norm=float("nan"),
            x=x_start,
            params=params,
            message=f"Residual evaluation failed: {e}",
        )

    message = "Starting point already satisfies the tolerance"
    if sequential_passes > 0 and best_norm > tol:
        try:
            seq = converge_flowsheet(
                PlantState.unflatten(x_start, params.layout), params, max_passes=sequential_passes,
            )
            func(seq.state.flatten())
        except ProcessModelError as e:
            logger.warning("Sequential pass abandoned: {}", e)
            warnings.append(f"Sequential pass abandoned: {e}")
        else:
            message = f"Sequential pass: {seq.passes} passes, tear error {seq.tear_error:.3g}"
            if not seq.converged:
                warnings.append(
                    f"Sequential pass stopped after {seq.passes} passes "
                    f"with tear error {seq.tear_error:.3g}"
                )

    if best_norm > tol:
        maxfev = max_evaluations or 20 * (x_start.size + 1)
        try:
            _, _, _, msg = fsolve(func, best_x.copy(), xtol=xtol, maxfev=maxfev, full_output=True)
            message = str(msg)
        except ProcessModelError as e:
            logger.warning("Simultaneous solve aborted after {} evaluations: {}", evaluations, e)
            message = f"Residual evaluation failed: {e}"
            warnings.append(message)

    converged = best_norm <= tol
    if converged:
        logger.info("Converged after {} evaluations, |r|_inf={:.3e}", evaluations, best_norm)
    else:
        logger.warning(
            "Not converged after {} evaluations, |r|_inf={:.3e}: {}", evaluations, best_norm, message,
        )

    return SolveResult(
        converged=converged,
        iterations=evaluations,
        residual_norm=best_norm,
        x=best_x,
        params=params,
        message=message,
        state=PlantState.unflatten(best_x, params.layout),
        warnings=warnings,
    )
