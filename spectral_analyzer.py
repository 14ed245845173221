"""
Spectral analysis: windowed DFT over hop-aligned sample windows

analyze_spectrum() turns a SampleBuffer into a Spectrogram of magnitude
frames. Frames are computed one window at a time so a cancellation request
is honoured within one window's worth of work.
"""

import logging

import numpy as np
from scipy import signal as scipy_signal

from sculpture_errors import InvalidAudioData, check_memory_budget
from sculpture_params import AnalysisConfig
from sculpture_progress import check_cancelled, report
from sculpture_types import SpectralFrame, Spectrogram

logger = logging.getLogger(__name__)

STEP_ID = "frequency-analysis"
BYTES_PER_VALUE = 4  # float32 accounting, matches the budget the caller measures
PROGRESS_EVERY = 10  # windows between progress reports


def window_function(name, size):
    """Symmetric window of the given length (w[0] == w[-1])"""
    return scipy_signal.get_window(name, size, fftbins=False)


def frame_count(sample_count, window_size, hop_size):
    """Number of full windows analysed: floor((n - window) / hop)"""
    if sample_count <= window_size:
        return 0
    return (sample_count - window_size) // hop_size


def estimate_memory(sample_count, config):
    """Bytes needed to hold every frame of the spectrogram"""
    frames = frame_count(sample_count, config.window_size, config.hop_size)
    return frames * config.window_size * BYTES_PER_VALUE


def magnitude_spectrum(windowed):
    """|DFT| of the first len/2 bins"""
    half = len(windowed) // 2
    return np.abs(np.fft.rfft(windowed))[:half]


def analyze_spectrum(buffer, config=None, available_memory=None,
                     cancel_token=None, progress=None):
    """Compute the magnitude spectrogram of the buffer's first channel

    Args:
        buffer: SampleBuffer to analyse.
        config: AnalysisConfig (window size, hop size, window function).
        available_memory: byte budget from the caller's resource monitor,
            or None to skip the memory check.
        cancel_token: optional CancellationToken polled once per window.
        progress: optional callback (step_id, percent, message).

    Returns:
        Spectrogram. Empty when the buffer is not longer than one window.

    Raises:
        MemoryLimitExceeded: estimate is not below 70% of available_memory.
        Cancelled: the token was set before the last window finished.
    """
    config = config or AnalysisConfig()
    if buffer.sample_rate <= 0:
        raise InvalidAudioData(f"sample_rate must be positive, got {buffer.sample_rate}")
    samples = buffer.first_channel()
    window_size = config.window_size
    hop_size = config.hop_size

    check_memory_budget(
        "frequency spectrum analysis",
        estimate_memory(len(samples), config),
        available_memory,
    )

    total = frame_count(len(samples), window_size, hop_size)
    logger.debug("analysing %d windows of %d samples (hop %d, %s)",
                 total, window_size, hop_size, config.window_function)

    window = window_function(config.window_function, window_size)
    frames = []

    for i in range(total):
        check_cancelled(cancel_token, STEP_ID)

        start = i * hop_size
        chunk = samples[start:start + window_size]
        frames.append(SpectralFrame(
            magnitudes=magnitude_spectrum(chunk * window),
            time_sec=start / buffer.sample_rate,
        ))

        if (i + 1) % PROGRESS_EVERY == 0:
            report(progress, STEP_ID, (i + 1) / total * 100,
                   f"Analyzing frequency spectrum: {i + 1}/{total} windows")

    report(progress, STEP_ID, 100, f"Analyzed {total} windows")

    return Spectrogram(
        frames=tuple(frames),
        sample_rate=buffer.sample_rate,
        window_size=window_size,
        hop_size=hop_size,
    )
