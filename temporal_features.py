"""
Temporal and spectral-shape features

Amplitude envelope and zero-crossing rate work on raw samples; spectral
centroid and rolloff work on a Spectrogram. Divide-by-zero cases resolve to
0 instead of raising.
"""

import logging

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from scipy import signal as scipy_signal

from sculpture_types import AmplitudeEnvelope

logger = logging.getLogger(__name__)

ENVELOPE_WINDOW_SEC = 0.01  # 10ms
ZCR_WINDOW_SEC = 0.025  # 25ms, 50% overlap
PRE_EMPHASIS = 0.97
DEFAULT_ROLLOFF = 0.85


def extract_amplitude_envelope(buffer, window_sec=ENVELOPE_WINDOW_SEC):
    """Peak absolute value per non-overlapping window, global peak and RMS

    The envelope holds floor(n / window) values; trailing samples that do not
    fill a window still count towards the RMS.
    """
    samples = buffer.first_channel()
    window_size = max(1, int(buffer.sample_rate * window_sec))
    count = len(samples) // window_size

    # one row per window
    windows = np.abs(samples[:count * window_size]).reshape(count, window_size)
    values = windows.max(axis=1) if count else np.zeros(0)
    timestamps = np.arange(count) * window_size / float(buffer.sample_rate)

    peak = float(values.max()) if count else 0.0
    rms = float(np.sqrt(np.sum(samples ** 2) / len(samples))) if len(samples) else 0.0

    return AmplitudeEnvelope(
        values=values,
        timestamps=timestamps,
        peak=peak,
        rms=rms,
        window_size=window_size,
    )


def pre_emphasis(samples, coefficient=PRE_EMPHASIS):
    """y[n] = x[n] - coefficient * x[n-1]"""
    return scipy_signal.lfilter([1.0, -coefficient], [1.0], samples)


def zero_crossing_rate(buffer, window_sec=ZCR_WINDOW_SEC):
    """Sign changes per second of the pre-emphasised signal, per window

    Higher values mean noisier, more textured content.
    """
    samples = buffer.first_channel()
    sr = buffer.sample_rate
    window_size = max(2, int(sr * window_sec))
    hop_size = max(1, window_size // 2)

    if len(samples) < window_size:
        return np.zeros(0)

    num_frames = (len(samples) - window_size) // hop_size + 1
    filtered = pre_emphasis(samples)
    frames = sliding_window_view(filtered, window_size)[::hop_size][:num_frames]

    positive = frames >= 0
    crossings = np.count_nonzero(positive[:, 1:] != positive[:, :-1], axis=1)

    # crossings per window -> crossings per second
    return crossings * sr / float(window_size)


def spectral_centroid(spectrogram):
    """Magnitude-weighted mean frequency per frame, DC bin excluded"""
    if not len(spectrogram):
        return np.zeros(0)

    magnitudes = spectrogram.magnitudes[:, 1:]
    freqs = spectrogram.bin_frequencies()[1:]

    weighted = magnitudes @ freqs
    total = magnitudes.sum(axis=1)

    centroids = np.zeros(len(total))
    nonzero = total > 0
    centroids[nonzero] = weighted[nonzero] / total[nonzero]
    return centroids


def spectral_rolloff(spectrogram, threshold=DEFAULT_ROLLOFF):
    """Lowest frequency containing `threshold` of the frame's power

    Power is magnitude squared with the DC bin excluded. Frames with no
    power roll off at 0 Hz.
    """
    if not 0.0 < threshold <= 1.0:
        raise ValueError(f"threshold must be in (0, 1], got {threshold}")
    if not len(spectrogram):
        return np.zeros(0)
    if spectrogram.bin_count < 2:
        return np.zeros(len(spectrogram))

    power = spectrogram.magnitudes[:, 1:] ** 2
    cumulative = np.cumsum(power, axis=1)
    total = cumulative[:, -1]
    target = total * threshold

    # first bin (offset by the skipped DC bin) where the running sum hits the target
    rolloff_bins = np.argmax(cumulative >= target[:, None], axis=1) + 1

    rolloffs = rolloff_bins * spectrogram.sample_rate / float(spectrogram.window_size)
    rolloffs[total <= 0] = 0.0
    return rolloffs
