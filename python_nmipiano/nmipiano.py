"""
File: nmipiano.py

Description: This module implements nmiPiano (non-monotone inertial proximal
algorithm for nonconvex optimization) with an adaptive local estimate of the
Lipschitz constant of the smooth gradient.

nmiPiano solves problems of the form:

    min  F(x) = f(x) + g(x)
     x

where f is a differentiable, possibly nonconvex function whose gradient is
locally Lipschitz continuous, and g is a convex, possibly nonsmooth function
that is only accessed through its proximal map.

Algorithm outline (each iteration):
1. Estimate the local Lipschitz constant L of grad f at x_n from two
   gradient samples (x_n and x_n - alpha_n * grad f(x_n))
2. Backtracking: L_n = eta^l * L, alpha_n = 2 * (1 - beta) / L_n
3. Inertial proximal step:
      x_{n+1} = prox_{alpha_n g}(x_n - alpha_n * grad f(x_n) + beta * (x_n - x_{n-1}))
4. Accept the step as soon as the majorization test holds, otherwise
   increase l and go to 2
5. Stop when ||x_{n+1} - x_n|| < epsilon (if epsilon > 0) or when the
   iteration bound is reached

References:
    - P. Ochs, Y. Chen, T. Brox, T. Pock, "iPiano: Inertial Proximal
      Algorithm for Nonconvex Optimization", SIAM J. Imaging Sci., 2014.
"""
import logging
import math
import time
from dataclasses import dataclass, field, fields
from enum import Enum, auto
from typing import Any, Callable, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================
# Default maximum number of outer iterations
DEFAULT_MAX_ITERATIONS: int = 100
# Default inertial (momentum) weight
DEFAULT_BETA: float = 0.5
# Default backtracking growth factor of the Lipschitz estimate
DEFAULT_ETA: float = 1.05
# Default seed of the local Lipschitz constant
DEFAULT_L_INIT: float = 1.0
# Default for clamping every Lipschitz estimate below by L_init
DEFAULT_BOUND_L: bool = False
# Default early-stop threshold on the step size (0 disables early stopping)
DEFAULT_EPSILON: float = 0.0
# Seed of L_n when neither L_init nor the initial estimate is usable
DEFAULT_L_SEED: float = 1.0

# Temporary step size driving the first Lipschitz probe
_INITIAL_PROBE_ALPHA: float = 0.1
# Minimum ||grad f(x0)||^2 for refining L_n with a Lipschitz probe
_INITIAL_PROBE_GRADIENT_NORM_SQ: float = 0.001
# Number of backtracking growth attempts between two diagnostics
_BACKTRACKING_REPORT_INTERVAL: int = 1000


# ============================================================================
# Errors
# ============================================================================
class NMIPIANO_Error(RuntimeError):
    """Fatal error that aborts an nmiPiano run."""


class ContractViolationError(NMIPIANO_Error):
    """A collaborator returned an array whose shape differs from its input."""


class NumericDivergenceError(NMIPIANO_Error):
    """The local Lipschitz estimate became non-finite during backtracking."""


# ============================================================================
# Exit status
# ============================================================================
class ExitStatus(Enum):
    """Exit status of the nmiPiano solver."""
    CONVERGED = auto()
    NOT_CONVERGED_ITERATIONS = auto()
    NOT_CONVERGED_OUT_OF_TIME = auto()
    CANCELLED = auto()


# ============================================================================
# Configuration
# ============================================================================
@dataclass(frozen=True, eq=False)
class NMIPIANO_Config:
    """
    Immutable algorithm parameters and initial iterate of one run.

    Attributes
    ----------
    x0 : np.ndarray
        Initial iterate. Copied on construction and stored read-only.
    max_iter : int
        Bound on the number of outer iterations (the loop runs for
        t = 0 .. max_iter inclusive).
    beta : float
        Inertial weight, 0 <= beta < 1.
    eta : float
        Backtracking growth factor of the Lipschitz estimate, eta > 1.
    L_init : float
        Seed of the local Lipschitz constant. Values <= 0 do not seed L_n.
    bound_L : bool
        Clamp every Lipschitz estimate below by L_init, and always seed the
        backtracking with the previously accepted L_n.
    epsilon : float
        Early-stop threshold on ||x_{n+1} - x_n||. 0 disables early stopping.
    max_duration : float or None
        Wall-clock limit in seconds (``None`` = no limit).
    """
    x0: np.ndarray
    max_iter: int = DEFAULT_MAX_ITERATIONS
    beta: float = DEFAULT_BETA
    eta: float = DEFAULT_ETA
    L_init: float = DEFAULT_L_INIT
    bound_L: bool = DEFAULT_BOUND_L
    epsilon: float = DEFAULT_EPSILON
    max_duration: Optional[float] = None

    def __post_init__(self):
        x0 = np.array(self.x0, dtype=float)
        if x0.size == 0:
            raise ValueError("x0 must not be empty")
        if not np.all(np.isfinite(x0)):
            raise ValueError("x0 must contain only finite values")
        x0.setflags(write=False)
        object.__setattr__(self, "x0", x0)

        if int(self.max_iter) != self.max_iter or self.max_iter < 0:
            raise ValueError(
                f"max_iter must be a non-negative integer, got {self.max_iter}")
        object.__setattr__(self, "max_iter", int(self.max_iter))
        if not 0.0 <= self.beta < 1.0:
            raise ValueError(f"beta must lie in [0, 1), got {self.beta}")
        if not self.eta > 1.0:
            raise ValueError(f"eta must be greater than 1, got {self.eta}")
        if not math.isfinite(self.L_init):
            raise ValueError(f"L_init must be finite, got {self.L_init}")
        if not self.epsilon >= 0.0:
            raise ValueError(
                f"epsilon must be non-negative, got {self.epsilon}")
        if self.max_duration is not None and not self.max_duration > 0.0:
            raise ValueError(
                f"max_duration must be positive, got {self.max_duration}")


# ============================================================================
# Iteration state
# ============================================================================
@dataclass
class NMIPIANO_State:
    """
    Mutable numeric snapshot threaded through one optimization run.

    All arrays share the shape of ``x0``.

    Attributes
    ----------
    x_n, x_prev : np.ndarray
        Current and previous iterate.
    delta_x : np.ndarray
        Pre-proximal increment applied in the last accepted step.
    delta_norm : float
        ||x_{n+1} - x_n|| of the last accepted step.
    f_val, g_val : float
        Smooth and nonsmooth objective value at x_n.
    grad : np.ndarray
        Gradient of the smooth term at x_n.
    L_n : float
        Current local Lipschitz estimate.
    alpha_n : float
        Step size, 2 * (1 - beta) / L_n.
    n : int
        Iteration counter.
    """
    x_n: np.ndarray
    x_prev: np.ndarray
    delta_x: np.ndarray
    grad: np.ndarray
    delta_norm: float = 0.0
    f_val: float = 0.0
    g_val: float = 0.0
    L_n: float = 0.0
    alpha_n: float = 0.0
    n: int = 0

    def snapshot(self) -> "NMIPIANO_State":
        """Return a deep copy whose arrays are read-only."""
        values = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray):
                value = value.copy()
                value.setflags(write=False)
            values[f.name] = value
        return NMIPIANO_State(**values)


# ============================================================================
# Solver status (returned after solve)
# ============================================================================
@dataclass
class NMIPIANO_SolverStatus:
    """
    Result returned by :meth:`NMIPIANO_Optimizer.solve`.

    Attributes
    ----------
    exit_status : ExitStatus
        Reason the solver terminated.
    x : np.ndarray
        Final iterate.
    cost_value : float
        Smooth term f at the final iterate.
    nonsmooth_value : float
        Nonsmooth term g at the final iterate.
    num_iter : int
        Number of accepted outer iterations.
    lipschitz_constant : float
        Last accepted local Lipschitz estimate.
    step_size : float
        Last accepted step size.
    delta_norm : float
        ||x_{n+1} - x_n|| of the last accepted step.
    solve_time : float
        Wall-clock time in seconds.
    """
    exit_status: ExitStatus
    x: np.ndarray
    cost_value: float
    nonsmooth_value: float
    num_iter: int
    lipschitz_constant: float
    step_size: float
    delta_norm: float
    solve_time: float = field(default=0.0)

    def has_converged(self) -> bool:
        return self.exit_status == ExitStatus.CONVERGED


def _no_callback(state: NMIPIANO_State) -> None:
    pass


# ============================================================================
# nmiPiano Optimizer
# ============================================================================
class NMIPIANO_Optimizer:
    """
    nmiPiano solver for composite problems min f(x) + g(x).

    Parameters
    ----------
    value_func : callable
        ``value_func(x) -> float`` - evaluates the smooth term f at *x*.
    gradient_func : callable
        ``gradient_func(x) -> ndarray`` - gradient of f at *x*, same shape as *x*.
    nonsmooth_func : callable
        ``nonsmooth_func(x) -> float`` - evaluates the nonsmooth term g at *x*.
    prox_func : callable
        ``prox_func(v, alpha) -> ndarray`` - proximal map of alpha * g at *v*,
        same shape as *v*.
    config : NMIPIANO_Config
        Algorithm parameters and initial iterate.
    callback : callable or None
        ``callback(state)`` - invoked once per outer iteration with a
        read-only snapshot of the current (pre-update) state.
    cancel_event : object or None
        Any object with ``is_set() -> bool`` (e.g. ``threading.Event``),
        checked at the top of every outer iteration.

    Example
    -------
    >>> config = NMIPIANO_Config(x0=np.array([2.0]), epsilon=1e-6)
    >>> solver = NMIPIANO_Optimizer(
    ...     value_func=lambda x: 0.5 * float(np.sum(x ** 2)),
    ...     gradient_func=lambda x: x.copy(),
    ...     nonsmooth_func=lambda x: 0.0,
    ...     prox_func=lambda v, alpha: v.copy(),
    ...     config=config)
    >>> x_star, f_star = solver.optimize()
    """

    def __init__(
        self,
        value_func: Callable[[np.ndarray], float],
        gradient_func: Callable[[np.ndarray], np.ndarray],
        nonsmooth_func: Callable[[np.ndarray], float],
        prox_func: Callable[[np.ndarray, float], np.ndarray],
        config: NMIPIANO_Config,
        callback: Optional[Callable[[NMIPIANO_State], None]] = None,
        cancel_event: Optional[Any] = None,
    ):
        self._value_func = value_func
        self._gradient_func = gradient_func
        self._nonsmooth_func = nonsmooth_func
        self._prox_func = prox_func
        self.config = config
        self._callback = callback if callback is not None else _no_callback
        self._cancel_event = cancel_event

        self._state: Optional[NMIPIANO_State] = None

    @property
    def state(self) -> Optional[NMIPIANO_State]:
        """Read-only snapshot of the current (or last) run's state."""
        if self._state is None:
            return None
        return self._state.snapshot()

    # ==================================================================
    #  Public API
    # ==================================================================
    def optimize(self) -> Tuple[np.ndarray, float]:
        """Run nmiPiano to completion and return ``(x_star, f_star)``."""
        status = self.solve()
        return status.x, status.cost_value

    def solve(self) -> NMIPIANO_SolverStatus:
        """
        Run nmiPiano from ``config.x0``.

        Returns
        -------
        NMIPIANO_SolverStatus
            Information about the run (exit reason, final iterate, etc.).

        Raises
        ------
        ContractViolationError
            A collaborator returned an array of the wrong shape.
        NumericDivergenceError
            The Lipschitz estimate diverged during backtracking.
        """
        t_start = time.perf_counter()
        cfg = self.config
        logger.info(
            f"nmiPiano start: shape={cfg.x0.shape}, max_iter={cfg.max_iter}, "
            f"beta={cfg.beta}, eta={cfg.eta}, L_init={cfg.L_init}, "
            f"bound_L={cfg.bound_L}, epsilon={cfg.epsilon}")

        s = self._initialize()

        exit_status = ExitStatus.NOT_CONVERGED_ITERATIONS
        for _ in range(cfg.max_iter + 1):
            if self._is_cancelled():
                exit_status = ExitStatus.CANCELLED
                break
            if cfg.max_duration is not None and \
                    time.perf_counter() - t_start > cfg.max_duration:
                exit_status = ExitStatus.NOT_CONVERGED_OUT_OF_TIME
                break

            self._callback(s.snapshot())

            if self._iterate(s):
                exit_status = ExitStatus.CONVERGED
                break

        elapsed = time.perf_counter() - t_start
        logger.info(
            f"nmiPiano end: {exit_status.name} after {s.n} iterations "
            f"({elapsed:.3f} s), f={s.f_val:.6e}, g={s.g_val:.6e}")

        return NMIPIANO_SolverStatus(
            exit_status=exit_status,
            x=s.x_n.copy(),
            cost_value=s.f_val,
            nonsmooth_value=s.g_val,
            num_iter=s.n,
            lipschitz_constant=s.L_n,
            step_size=s.alpha_n,
            delta_norm=s.delta_norm,
            solve_time=elapsed,
        )

    # ==================================================================
    #  Lipschitz estimation
    # ==================================================================
    def estimate_lipschitz(self, state: NMIPIANO_State) -> float:
        """
        Estimate the local Lipschitz constant of grad f at ``state.x_n``.

        L = ||grad f(x_n) - grad f(x_tilde)|| / ||x_n - x_tilde||
        with the probe point x_tilde = x_n - alpha_n * grad f(x_n).

        The result is NaN or inf when x_tilde == x_n (e.g. zero gradient);
        callers have to check it. With ``bound_L`` the result is clamped
        below by ``L_init``.
        """
        x_tilde = state.x_n - state.alpha_n * state.grad
        grad_tilde = self._gradient(x_tilde)

        with np.errstate(divide="ignore", invalid="ignore"):
            L = np.float64(np.linalg.norm(state.grad - grad_tilde)) / \
                np.float64(np.linalg.norm(state.x_n - x_tilde))
        L = float(L)

        if self.config.bound_L:
            # NaN compares False, so it is clamped to L_init as well
            L = max(self.config.L_init, L)
        return L

    # ==================================================================
    #  Step generation
    # ==================================================================
    def compute_step(
        self, state: NMIPIANO_State
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Inertial proximal candidate for the step size ``state.alpha_n``.

        Returns
        -------
        tuple
            (delta_x, x_candidate, delta_norm) with
            delta_x = -alpha_n * grad + beta * (x_n - x_prev),
            x_candidate = prox(x_n + delta_x, alpha_n),
            delta_norm = ||x_n - x_candidate||.
        """
        delta_x = -state.alpha_n * state.grad + \
            self.config.beta * (state.x_n - state.x_prev)
        x_candidate = self._prox(state.x_n + delta_x, state.alpha_n)
        delta_norm = float(np.linalg.norm(state.x_n - x_candidate))
        return delta_x, x_candidate, delta_norm

    # ==================================================================
    #  Backtracking
    # ==================================================================
    def check_condition(
        self, state: NMIPIANO_State, x_candidate: np.ndarray
    ) -> bool:
        """
        Majorization test of the backtracking.

        f(x_c) <= f(x_n) + ||grad * (x_c - x_n)||^2 + L_n / 2 * ||x_c - x_n||^2

        NOTE: the second term is the squared norm of the element-wise
        product of gradient and residual, not the inner product
        <grad, x_c - x_n> of the published descent lemma. Kept as is so that
        accepted steps match the reference nmiPiano results.
        """
        f_candidate = float(self._value_func(x_candidate))
        residual = x_candidate - state.x_n
        rhs = state.f_val \
            + float(np.sum((state.grad * residual) ** 2)) \
            + 0.5 * state.L_n * float(np.sum(residual ** 2))
        return f_candidate <= rhs

    def backtrack(
        self, state: NMIPIANO_State, L_seed: float
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Grow L_n = eta^l * L_seed until the majorization test holds.

        ``state.L_n`` and ``state.alpha_n`` are updated for every attempt and
        hold the accepted values on return.

        Returns
        -------
        tuple
            (delta_x, x_candidate, delta_norm) of the accepted step.

        Raises
        ------
        NumericDivergenceError
            L_n became non-finite.
        """
        cfg = self.config
        l = 0
        while True:
            with np.errstate(over="ignore"):
                state.L_n = float(np.float64(cfg.eta) ** l * L_seed)
            if not math.isfinite(state.L_n):
                logger.error(
                    f"Lipschitz estimate diverged after {l} backtracking "
                    f"steps at iteration {state.n}")
                raise NumericDivergenceError(
                    f"local Lipschitz estimate is not finite after {l} "
                    f"backtracking steps (iteration {state.n}); the smooth "
                    f"term is not locally Lipschitz differentiable or "
                    f"eta / L_init are unusable")
            state.alpha_n = 2.0 * (1.0 - cfg.beta) / state.L_n

            delta_x, x_candidate, delta_norm = self.compute_step(state)
            if self.check_condition(state, x_candidate):
                return delta_x, x_candidate, delta_norm

            l += 1
            if l % _BACKTRACKING_REPORT_INTERVAL == 0:
                logger.warning(
                    f"Backtracking: {l} growth steps at iteration {state.n} "
                    f"without sufficient decrease (L_n = {state.L_n:.6e})")

    # ==================================================================
    #  Core sub-steps
    # ==================================================================
    def _initialize(self) -> NMIPIANO_State:
        cfg = self.config
        x0 = np.array(cfg.x0, dtype=float)

        s = NMIPIANO_State(
            x_n=x0,
            x_prev=x0.copy(),
            delta_x=np.zeros_like(x0),
            grad=np.zeros_like(x0),
        )
        self._state = s
        self._evaluate_objective(s)

        s.alpha_n = _INITIAL_PROBE_ALPHA
        s.L_n = cfg.L_init if cfg.L_init > 0.0 else 0.0
        if float(np.sum(s.grad ** 2)) > _INITIAL_PROBE_GRADIENT_NORM_SQ:
            L_probe = self.estimate_lipschitz(s)
            if math.isfinite(L_probe):
                s.L_n = max(s.L_n, L_probe)
        if not s.L_n > 0.0:
            s.L_n = DEFAULT_L_SEED
        s.alpha_n = 2.0 * (1.0 - cfg.beta) / s.L_n
        return s

    def _iterate(self, s: NMIPIANO_State) -> bool:
        """One outer iteration. Returns True when the early stop fired."""
        cfg = self.config

        L_seed = self.estimate_lipschitz(s)
        if cfg.bound_L:
            L_seed = s.L_n
        elif not (math.isfinite(L_seed) and L_seed > 0.0):
            logger.warning(
                f"Lipschitz probe at iteration {s.n} gave {L_seed}; "
                f"reusing L_n = {s.L_n:.6e}")
            L_seed = s.L_n

        s.delta_x, x_candidate, s.delta_norm = self.backtrack(s, L_seed)

        s.x_prev = s.x_n
        s.x_n = x_candidate
        self._evaluate_objective(s)
        s.n += 1

        logger.debug(
            f"iter {s.n}: f={s.f_val:.6e}, g={s.g_val:.6e}, "
            f"L_n={s.L_n:.6e}, alpha_n={s.alpha_n:.6e}, "
            f"delta_norm={s.delta_norm:.6e}")

        return cfg.epsilon > 0.0 and s.delta_norm < cfg.epsilon

    def _evaluate_objective(self, s: NMIPIANO_State) -> None:
        """Fill f_val, g_val and grad at s.x_n."""
        s.f_val = float(self._value_func(s.x_n))
        s.g_val = float(self._nonsmooth_func(s.x_n))
        s.grad = self._gradient(s.x_n)

    def _gradient(self, x: np.ndarray) -> np.ndarray:
        grad = np.array(self._gradient_func(x), dtype=float)
        if grad.shape != x.shape:
            logger.error(
                f"gradient returned shape {grad.shape} for input {x.shape}")
            raise ContractViolationError(
                f"gradient_func returned an array of shape {grad.shape}, "
                f"expected {x.shape}")
        return grad

    def _prox(self, v: np.ndarray, alpha: float) -> np.ndarray:
        x = np.array(self._prox_func(v, alpha), dtype=float)
        if x.shape != v.shape:
            logger.error(
                f"prox returned shape {x.shape} for input {v.shape}")
            raise ContractViolationError(
                f"prox_func returned an array of shape {x.shape}, "
                f"expected {v.shape}")
        return x

    def _is_cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()
