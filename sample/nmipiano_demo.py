"""
File: nmipiano_demo.py

This script demonstrates the nmiPiano solver on a smooth quadratic
with no nonsmooth term, where it behaves as inertial gradient descent
with backtracking.

Problem:
    min  f(x) = 0.5 * ||x||^2
     x

The minimum is at x = 0.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np

from python_nmipiano.nmipiano import NMIPIANO_Config, NMIPIANO_Optimizer
from python_nmipiano.proximal_operators import make_zero_term

logging.basicConfig(level=logging.INFO)

# ============================================================
# 1. Define the problem
# ============================================================


def cost(x: np.ndarray) -> float:
    """Quadratic cost function."""
    return 0.5 * float(np.sum(x ** 2))


def gradient(x: np.ndarray) -> np.ndarray:
    """Gradient of the quadratic cost function."""
    return x.copy()


g, prox_g = make_zero_term()

# ============================================================
# 2. Create configuration and solver
# ============================================================
config = NMIPIANO_Config(
    x0=np.array([2.0]),
    max_iter=100,
    beta=0.5,
    eta=1.05,
    L_init=1.0,
    epsilon=1e-6,
)

history = []


def monitor(state):
    history.append((state.n, float(np.linalg.norm(state.x_n))))


solver = NMIPIANO_Optimizer(
    value_func=cost,
    gradient_func=gradient,
    nonsmooth_func=g,
    prox_func=prox_g,
    config=config,
    callback=monitor,
)

# ============================================================
# 3. Solve
# ============================================================
print(f"Initial guess : x = {config.x0.flatten()}")
print(f"Initial cost  : f(x) = {cost(config.x0):.6f}")
print()

status = solver.solve()

# ============================================================
# 4. Print results
# ============================================================
print("--- nmiPiano result ---")
print(f"Exit status   : {status.exit_status.name}")
print(f"Iterations    : {status.num_iter}")
print(f"Solution      : x = {status.x.flatten()}")
print(f"Cost at sol.  : f(x) = {status.cost_value:.10e}")
print(f"L_n           : {status.lipschitz_constant:.4f}")
print(f"Converged     : {status.has_converged()}")
print()

for n, norm_x in history[:10]:
    print(f"  n = {n:3d}   ||x_n|| = {norm_x:.6e}")
