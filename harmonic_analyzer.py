"""
Harmonic content per spectral frame

The complexity value combines how many of the first ten harmonics of the
frame's fundamental are present with the share of the frame's energy they
carry. It drives surface texture, so it only needs to be monotone in
"richness", not musically exact.
"""

import numpy as np

FUNDAMENTAL_MIN_HZ = 80.0
FUNDAMENTAL_MAX_HZ = 800.0
MAX_HARMONIC = 10
HARMONIC_HALF_WIDTH = 3  # bins either side of the expected harmonic bin
PRESENCE_RATIO = 0.1  # of the fundamental's magnitude


def find_fundamental(spectrum, sample_rate, window_size):
    """(bin, magnitude) of the strongest bin in the 80-800 Hz range

    bin is 0 when the range is empty.
    """
    min_bin = int(FUNDAMENTAL_MIN_HZ * window_size / sample_rate)
    max_bin = min(int(FUNDAMENTAL_MAX_HZ * window_size / sample_rate), len(spectrum))
    if max_bin <= min_bin:
        return 0, 0.0

    search = spectrum[min_bin:max_bin]
    offset = int(np.argmax(search))
    return min_bin + offset, float(search[offset])


def frame_complexity(spectrum, sample_rate, window_size):
    """Harmonic complexity of a single magnitude spectrum"""
    fundamental_bin, fundamental_mag = find_fundamental(spectrum, sample_rate, window_size)
    if fundamental_bin == 0 or fundamental_mag == 0:
        return 0.0

    fundamental_freq = fundamental_bin * sample_rate / window_size
    last_bin = len(spectrum) - 1

    harmonic_energy = 0.0
    harmonic_count = 0
    for harmonic in range(1, MAX_HARMONIC + 1):
        harmonic_bin = int(round(fundamental_freq * harmonic * window_size / sample_rate))
        if harmonic_bin > last_bin:
            break

        lo = max(0, harmonic_bin - HARMONIC_HALF_WIDTH)
        hi = min(last_bin, harmonic_bin + HARMONIC_HALF_WIDTH)
        magnitude = float(np.sum(spectrum[lo:hi + 1]))

        if magnitude > fundamental_mag * PRESENCE_RATIO:
            harmonic_energy += magnitude
            harmonic_count += 1

    total_energy = float(np.sum(spectrum))
    ratio = harmonic_energy / total_energy if total_energy > 0 else 0.0
    return harmonic_count * ratio


def harmonic_complexity(spectrogram):
    """One complexity value per spectrogram frame"""
    return np.array([
        frame_complexity(frame.magnitudes, spectrogram.sample_rate, spectrogram.window_size)
        for frame in spectrogram.frames
    ], dtype=np.float64)
