"""
Parameter search for the tracker configuration.

Provides:
- A minimizer interface for derivative-free, trust-region quadratic-model
  solvers, with a default backend on Py-BOBYQA
- minimize(), which normalizes the trust-region radius pair
- run_optimizer(), which searches the 4-element ParameterVector by building
  a fresh tracking system for every evaluation and reports the best vector
  with its objective value; optimize() returns the vector alone

The objective is caller-supplied. The default, placeholder_objective, is a
placeholder that always returns 0.0: no error metric between estimated and
reference poses is defined yet.
"""

import logging
from typing import Callable, Optional, Protocol, Tuple

import numpy as np
import pybobyqa

from .config import DEFAULT_PARAMETERS, ParameterVector, TrackerConfig, update_config_from_vector
from .measurements import MeasurementLog, load_measurement_log
from .tracking import TrackingSystem, TrackedTarget, build_tracking_system

logger = logging.getLogger(__name__)


DEFAULT_RADIUS_BOUNDS = (1e-8, 1e-4)
DEFAULT_MAX_EVALUATIONS = 10

ObjectiveFn = Callable[[TrackingSystem, TrackedTarget, MeasurementLog], float]


class Minimizer(Protocol):
    def __call__(
        self,
        objective: Callable[[np.ndarray], float],
        x: np.ndarray,
        npt: int,
        rho_begin: float,
        rho_end: float,
        max_evaluations: int,
    ) -> float: ...


class BobyqaMinimizer:
    """Minimizer backend over pybobyqa.solve; writes the best point into ``x``."""

    def __call__(
        self,
        objective: Callable[[np.ndarray], float],
        x: np.ndarray,
        npt: int,
        rho_begin: float,
        rho_end: float,
        max_evaluations: int
    ) -> float:
        soln = pybobyqa.solve(
            objective,
            x.copy(),
            npt=npt,
            rhobeg=rho_begin,
            rhoend=rho_end,
            maxfun=max_evaluations
        )
        logger.info("Minimizer finished after %s evaluations: %s", soln.nf, soln.msg)

        if soln.x is not None:
            x[:] = soln.x
        return float(soln.f) if soln.f is not None else float("nan")


def interpolation_points(dimension: int) -> int:
    """Number of interpolation points used for a problem of this size."""
    return 2 * dimension


def minimize(
    objective: Callable[[np.ndarray], float],
    x: np.ndarray,
    npt: int,
    rho: Tuple[float, float],
    max_evaluations: int,
    minimizer: Optional[Minimizer] = None
) -> float:
    """
    Minimize ``objective`` starting from ``x``.

    Args:
        objective: Function of the parameter array
        x: Start point; overwritten with the best point found
        npt: Number of interpolation points for the quadratic model
        rho: Initial and final trust-region radius, in either order
        max_evaluations: Evaluation budget
        minimizer: Backend (BobyqaMinimizer if None)

    Returns:
        Objective value reported by the backend
    """
    rho_begin, rho_end = rho
    if rho_end > rho_begin:
        rho_begin, rho_end = rho_end, rho_begin

    if minimizer is None:
        minimizer = BobyqaMinimizer()
    return minimizer(objective, x, npt, rho_begin, rho_end, max_evaluations)


def placeholder_objective(
    system: TrackingSystem,
    target: TrackedTarget,
    log: MeasurementLog
) -> float:
    """Caller-supplied error metric; currently a placeholder returning 0.0."""
    return 0.0


def optimize(
    log_path,
    objective: Optional[ObjectiveFn] = None,
    start: Optional[ParameterVector] = None,
    rho: Tuple[float, float] = DEFAULT_RADIUS_BOUNDS,
    max_evaluations: int = DEFAULT_MAX_EVALUATIONS,
    base_config: Optional[TrackerConfig] = None,
    system_factory: Callable[[TrackerConfig], TrackingSystem] = build_tracking_system,
    minimizer: Optional[Minimizer] = None,
    delimiter: str = ","
) -> ParameterVector:
    """Best ParameterVector found by run_optimizer, without the objective value."""
    params, _ = run_optimizer(
        log_path,
        objective=objective,
        start=start,
        rho=rho,
        max_evaluations=max_evaluations,
        base_config=base_config,
        system_factory=system_factory,
        minimizer=minimizer,
        delimiter=delimiter
    )
    return params


def run_optimizer(
    log_path,
    objective: Optional[ObjectiveFn] = None,
    start: Optional[ParameterVector] = None,
    rho: Tuple[float, float] = DEFAULT_RADIUS_BOUNDS,
    max_evaluations: int = DEFAULT_MAX_EVALUATIONS,
    base_config: Optional[TrackerConfig] = None,
    system_factory: Callable[[TrackerConfig], TrackingSystem] = build_tracking_system,
    minimizer: Optional[Minimizer] = None,
    delimiter: str = ","
) -> Tuple[ParameterVector, float]:
    """
    Search the tracker parameters that minimize ``objective`` over a log.

    Every evaluation expands the candidate vector into a TrackerConfig,
    builds a fresh tracking system from it and scores body 0 / target 0.

    Args:
        log_path: Measurement log to evaluate against
        objective: Error metric (placeholder_objective if None)
        start: Initial guess (DEFAULT_PARAMETERS if None)
        rho: Trust-region radius pair, in either order
        max_evaluations: Evaluation budget
        base_config: Fields not covered by the vector
        system_factory: Builds a tracking system from a config
        minimizer: Minimizer backend
        delimiter: Log field separator

    Returns:
        Tuple of (best ParameterVector, objective value the backend reported)
    """
    log = load_measurement_log(log_path, delimiter=delimiter)
    if objective is None:
        objective = placeholder_objective

    x = (start or DEFAULT_PARAMETERS).as_array()
    npt = interpolation_points(len(x))

    def evaluate(candidate: np.ndarray) -> float:
        config = update_config_from_vector(candidate, base_config)
        system = system_factory(config)
        target = system.get_body(0).get_target(0)
        return float(objective(system, target, log))

    value = minimize(evaluate, x, npt, rho, max_evaluations, minimizer=minimizer)

    result = ParameterVector.from_array(x)
    logger.info("Optimizer returned %s and these parameter values: %s", value, x)
    return result, value
