"""
File: proximal_operators.py

Description: Ready-made convex nonsmooth terms g and their proximal maps for
use with the nmiPiano solver (nmipiano.py).

Every factory returns a pair ``(nonsmooth_func, prox_func)``:

    nonsmooth_func(x) -> float          g(x)
    prox_func(v, alpha) -> np.ndarray   argmin_x g(x) + 1/(2 alpha) ||x - v||^2

The proximal map always returns a new array with the shape of *v*.

Available terms:
    - make_zero_term:  g = 0                        (prox = identity)
    - make_l1_term:    g = weight * ||x||_1         (prox = soft-thresholding)
    - make_box_term:   g = indicator of a box       (prox = clipping)
    - make_ball_term:  g = indicator of a ball      (prox = radial projection)
"""
from typing import Callable, Optional, Tuple

import numpy as np

# Tolerance used when deciding whether a point lies in a constraint set
FEASIBILITY_TOLERANCE: float = 1e-12

NonsmoothFunction = Callable[[np.ndarray], float]
ProxFunction = Callable[[np.ndarray, float], np.ndarray]


def make_zero_term() -> Tuple[NonsmoothFunction, ProxFunction]:
    """g = 0; nmiPiano then reduces to inertial gradient descent."""
    def value(x: np.ndarray) -> float:
        return 0.0

    def prox(v: np.ndarray, alpha: float) -> np.ndarray:
        return np.array(v, dtype=float)

    return value, prox


def make_l1_term(weight: float) -> Tuple[NonsmoothFunction, ProxFunction]:
    """
    Create the weighted l1 norm g(x) = weight * sum |x_i|.

    Parameters
    ----------
    weight : float
        Non-negative regularization weight.

    Returns
    -------
    tuple
        ``(value, prox)`` where prox is soft-thresholding with
        threshold ``alpha * weight``.
    """
    if weight < 0.0:
        raise ValueError(f"weight must be non-negative, got {weight}")

    def value(x: np.ndarray) -> float:
        return weight * float(np.sum(np.abs(x)))

    def prox(v: np.ndarray, alpha: float) -> np.ndarray:
        threshold = alpha * weight
        return np.sign(v) * np.maximum(np.abs(v) - threshold, 0.0)

    return value, prox


def make_box_term(
    lower: Optional[np.ndarray] = None,
    upper: Optional[np.ndarray] = None,
) -> Tuple[NonsmoothFunction, ProxFunction]:
    """
    Create the indicator function of the box [lower, upper].

    Parameters
    ----------
    lower : np.ndarray or None
        Element-wise lower bounds.  ``None`` means no lower bound (-inf).
    upper : np.ndarray or None
        Element-wise upper bounds.  ``None`` means no upper bound (+inf).

    Returns
    -------
    tuple
        ``(value, prox)``; value is 0 inside the box and inf outside,
        prox clips element-wise (independent of alpha).
    """
    if lower is not None and upper is not None and \
            np.any(np.asarray(lower) > np.asarray(upper)):
        raise ValueError("lower bound exceeds upper bound")

    def value(x: np.ndarray) -> float:
        if lower is not None and np.any(x < lower - FEASIBILITY_TOLERANCE):
            return np.inf
        if upper is not None and np.any(x > upper + FEASIBILITY_TOLERANCE):
            return np.inf
        return 0.0

    def prox(v: np.ndarray, alpha: float) -> np.ndarray:
        x = np.array(v, dtype=float)
        if lower is not None:
            np.maximum(x, lower, out=x)
        if upper is not None:
            np.minimum(x, upper, out=x)
        return x

    return value, prox


def make_ball_term(
    center: Optional[np.ndarray],
    radius: float,
) -> Tuple[NonsmoothFunction, ProxFunction]:
    """
    Create the indicator function of the ball {x : ||x - center|| <= radius}.

    Parameters
    ----------
    center : np.ndarray or None
        Center of the ball.  ``None`` means the origin.
    radius : float
        Radius of the ball (must be positive).
    """
    if not radius > 0.0:
        raise ValueError(f"radius must be positive, got {radius}")

    def value(x: np.ndarray) -> float:
        d = x - center if center is not None else x
        if float(np.linalg.norm(d)) > radius + FEASIBILITY_TOLERANCE:
            return np.inf
        return 0.0

    def prox(v: np.ndarray, alpha: float) -> np.ndarray:
        x = np.array(v, dtype=float)
        d = x - center if center is not None else x.copy()
        norm_d = float(np.linalg.norm(d))
        if norm_d > radius:
            if center is not None:
                x[...] = center + (radius / norm_d) * d
            else:
                x[...] = (radius / norm_d) * d
        return x

    return value, prox
