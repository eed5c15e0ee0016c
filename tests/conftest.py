"""
Pytest configuration and shared fixtures for the nmiPiano tests.
"""

import sys
from pathlib import Path

# Add parent directory to path so the solver packages import without install
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import numpy as np
import pytest

from python_nmipiano.proximal_operators import make_zero_term


def quadratic_cost(x):
    return 0.5 * float(np.sum(x ** 2))


def quadratic_gradient(x):
    return x.copy()


@pytest.fixture
def quadratic_problem():
    """Collaborators of f(x) = 0.5 * ||x||^2 with g = 0."""
    g, prox_g = make_zero_term()
    return {
        'value_func': quadratic_cost,
        'gradient_func': quadratic_gradient,
        'nonsmooth_func': g,
        'prox_func': prox_g,
    }


@pytest.fixture
def recorder():
    """Callback collecting every state snapshot it receives."""
    class Recorder:
        def __init__(self):
            self.states = []

        def __call__(self, state):
            self.states.append(state)

    return Recorder()
