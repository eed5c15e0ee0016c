"""
File: nmipiano_lasso_demo.py

This script demonstrates the nmiPiano solver on a sparse regression
(LASSO) problem.

Problem:
    min  0.5 * ||A x - b||^2 + lam * ||x||_1
     x

The data b is generated from a sparse ground truth x_true, so the
solution should recover its support.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import numpy as np

from python_nmipiano.nmipiano import NMIPIANO_Config, NMIPIANO_Optimizer
from python_nmipiano.proximal_operators import make_l1_term

logging.basicConfig(level=logging.INFO)

# ============================================================
# 1. Define the problem
# ============================================================
rng = np.random.default_rng(0)

m, n = 40, 20
A = rng.standard_normal((m, n))
x_true = np.zeros((n, 1))
x_true[[2, 7, 13], 0] = [1.5, -2.0, 0.8]
b = A @ x_true + 0.01 * rng.standard_normal((m, 1))

lam = 0.5


def cost(x: np.ndarray) -> float:
    """Least-squares data term."""
    r = A @ x - b
    return 0.5 * float(np.sum(r ** 2))


def gradient(x: np.ndarray) -> np.ndarray:
    """Gradient of the least-squares data term."""
    return A.T @ (A @ x - b)


g, prox_g = make_l1_term(lam)

# ============================================================
# 2. Create configuration and solver
# ============================================================
config = NMIPIANO_Config(
    x0=np.zeros((n, 1)),
    max_iter=500,
    beta=0.4,
    eta=1.2,
    L_init=1.0,
    epsilon=1e-8,
)

solver = NMIPIANO_Optimizer(
    value_func=cost,
    gradient_func=gradient,
    nonsmooth_func=g,
    prox_func=prox_g,
    config=config,
)

# ============================================================
# 3. Solve
# ============================================================
status = solver.solve()

# ============================================================
# 4. Print results
# ============================================================
print("--- nmiPiano LASSO result ---")
print(f"Exit status   : {status.exit_status.name}")
print(f"Iterations    : {status.num_iter}")
print(f"F(x) = f + g  : {status.cost_value + status.nonsmooth_value:.6f}")
print(f"Support found : {np.flatnonzero(np.abs(status.x) > 1e-3)}")
print(f"Support true  : {np.flatnonzero(x_true)}")
print(
    f"Distance to x_true: {np.linalg.norm(status.x - x_true):.2e}")
