"""Shared fixtures: synthetic buffers, a real FeatureSet and a closed cube."""

import numpy as np
import pytest

from feature_extractor import extract_features
from mesh_geometry import build_mesh
from sculpture_types import SampleBuffer

SR = 22050


def tone_with_clicks(sr=SR, duration=3.0, freq=220.0, click_every=0.5, seed=7):
    """Quiet sine bed with short noise bursts on a fixed grid"""
    n = int(sr * duration)
    t = np.arange(n) / sr
    y = 0.2 * np.sin(2 * np.pi * freq * t)

    rng = np.random.default_rng(seed)
    burst = rng.uniform(-0.8, 0.8, int(sr * 0.01))
    for start in np.arange(0.25, duration, click_every):
        i = int(start * sr)
        y[i:i + len(burst)] += burst[:n - i]
    return y


@pytest.fixture
def tone_buffer():
    return SampleBuffer(samples=tone_with_clicks(), sample_rate=SR)


@pytest.fixture
def features(tone_buffer):
    return extract_features(tone_buffer)


CUBE_VERTICES = np.array([
    [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
    [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],
], dtype=np.float64)

# outward winding
CUBE_FACES = np.array([
    [0, 2, 1], [0, 3, 2],  # bottom (z=0)
    [4, 5, 6], [4, 6, 7],  # top (z=1)
    [0, 1, 5], [0, 5, 4],  # front (y=0)
    [2, 3, 7], [2, 7, 6],  # back (y=1)
    [1, 2, 6], [1, 6, 5],  # right (x=1)
    [0, 4, 7], [0, 7, 3],  # left (x=0)
])


@pytest.fixture
def cube_mesh():
    return build_mesh(CUBE_VERTICES, CUBE_FACES)
