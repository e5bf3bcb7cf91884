import numpy as np
import pytest

from ct_scan_registration.config import RegistrationConfig

# =============================================================================
# Config Fixtures
# =============================================================================


@pytest.fixture
def config() -> RegistrationConfig:
    """Default parameters with the warm-up disabled."""
    return RegistrationConfig(system_delay=0)


# =============================================================================
# Test Utility Fixtures
# =============================================================================


@pytest.fixture
def numpy_rng():
    """Seeded generator for reproducible tests."""
    return np.random.default_rng(42)


# =============================================================================
# Synthetic Scan Fixtures
# =============================================================================
# Raw clouds are in sensor axes with the scanner rotating in the x-y plane.


@pytest.fixture
def square_outline():
    """Outline of a 10 m x 10 m room sampled every 0.2 m around the sensor.

    The scan starts mid-way along the x = +5 wall and runs counter-clockwise,
    so the four room corners land at indices 25, 75, 125 and 175, away from
    the 5-point margins.

    Returns:
        Tuple of (raw (200, 3) points, list of corner indices).
    """
    half = 5.0
    spacing = 0.2
    per_side = int(round(2 * half / spacing))  # 50
    offset = per_side // 2

    points = np.zeros((4 * per_side, 3))
    for k in range(4 * per_side):
        side, step = divmod((k + offset) % (4 * per_side), per_side)
        t = step * spacing
        if side == 0:
            points[k] = [half, -half + t, 0.0]
        elif side == 1:
            points[k] = [half - t, half, 0.0]
        elif side == 2:
            points[k] = [-half, half - t, 0.0]
        else:
            points[k] = [-half + t, -half, 0.0]

    corners = [per_side * s - offset for s in range(1, 5)]
    return points, corners


@pytest.fixture
def make_arc():
    """Factory for circular-arc raw clouds between two bearings (degrees)."""
    def _make(start_deg, end_deg, n=120, radius=10.0):
        angles = np.radians(np.linspace(start_deg, end_deg, n))
        return np.column_stack([
            radius * np.cos(angles),
            radius * np.sin(angles),
            np.zeros(n),
        ])
    return _make


@pytest.fixture
def random_walk():
    """Factory for a rough, corner-rich scan: a 3D random walk away from origin."""
    def _make(seed, n=300, step=0.05):
        rng = np.random.default_rng(seed)
        steps = rng.normal(scale=step, size=(n, 3))
        return np.cumsum(steps, axis=0) + np.array([0.0, 0.0, 8.0])
    return _make
