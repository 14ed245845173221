"""tests/test_harmonic_analyzer.py: fundamental search and harmonic complexity."""

import numpy as np
import pytest

from harmonic_analyzer import find_fundamental, frame_complexity, harmonic_complexity
from sculpture_types import SampleBuffer
from spectral_analyzer import analyze_spectrum

SR = 22050
W = 2048
# exactly on bin 20 so every harmonic lands on a whole bin
F0 = 20 * SR / W


def _harmonic_tone(partials, f0=F0, sr=SR, n=SR):
    t = np.arange(n) / sr
    return sum(amp * np.sin(2 * np.pi * f0 * (k + 1) * t) for k, amp in enumerate(partials))


def _first_frame(samples):
    return analyze_spectrum(SampleBuffer(samples, SR)).frames[0].magnitudes


class TestFundamental:
    def test_finds_strongest_bin_in_range(self):
        spectrum = _first_frame(_harmonic_tone([1.0]))
        bin_index, magnitude = find_fundamental(spectrum, SR, W)
        assert bin_index == 20
        assert magnitude > 0

    def test_ignores_energy_below_80hz(self):
        spectrum = np.zeros(W // 2)
        spectrum[3] = 10.0  # ~32 Hz
        spectrum[30] = 1.0
        assert find_fundamental(spectrum, SR, W) == (30, 1.0)

    def test_empty_range(self):
        assert find_fundamental(np.zeros(4), SR, W) == (0, 0.0)


class TestComplexity:
    def test_rich_tone_beats_pure_tone(self):
        pure = frame_complexity(_first_frame(_harmonic_tone([1.0])), SR, W)
        rich = frame_complexity(
            _first_frame(_harmonic_tone([1.0 / (k + 1) for k in range(8)])), SR, W)
        assert rich > pure > 0

    def test_pure_tone_counts_one_harmonic(self):
        complexity = frame_complexity(_first_frame(_harmonic_tone([1.0])), SR, W)
        # one present harmonic times the share of energy around it
        assert 0.5 < complexity <= 1.0

    def test_silence(self):
        assert frame_complexity(np.zeros(W // 2), SR, W) == 0.0

    def test_one_value_per_frame(self):
        spec = analyze_spectrum(SampleBuffer(_harmonic_tone([1.0, 0.5]), SR))
        values = harmonic_complexity(spec)
        assert values.shape == (len(spec),)
        assert np.all(values >= 0)
