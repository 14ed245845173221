"""
Onset detection, tempo estimation and beat tracking

Onsets come from peak picking on half-wave rectified spectral flux. Tempo is
read from the autocorrelation of a 10ms onset impulse train, falling back to
envelope peak spacing when there are too few onsets. Beats are onsets snapped
to the resulting tempo grid.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

THRESHOLD_STDDEVS = 2.0
MIN_ENVELOPE_WINDOWS = 100  # ~1s of 10ms windows
MIN_AUTOCORR_ONSETS = 4
IMPULSE_RATE = 100  # impulse train bins per second (10ms)
MIN_BPM = 60
MAX_BPM = 200
ENVELOPE_PEAK_RATIO = 0.6
BEAT_TOLERANCE = 0.3  # fraction of the beat interval


def spectral_flux(spectrogram):
    """Sum of positive magnitude increases between consecutive frames"""
    magnitudes = spectrogram.magnitudes
    if len(magnitudes) < 2:
        return np.zeros(0)
    diff = np.diff(magnitudes, axis=0)
    return np.maximum(diff, 0.0).sum(axis=1)


def adaptive_threshold(flux):
    """mean + 2 * stddev of the flux curve"""
    if len(flux) == 0:
        return 0.0
    return float(np.mean(flux) + THRESHOLD_STDDEVS * np.std(flux))


def detect_onsets(spectrogram):
    """Onset times in seconds, ascending

    flux[i] measures the change from frame i to frame i+1, so an onset found
    at flux[i] is stamped with frame i+1's time.
    """
    flux = spectral_flux(spectrogram)
    if len(flux) < 3:
        return ()

    threshold = adaptive_threshold(flux)
    timestamps = spectrogram.timestamps

    middle = flux[1:-1]
    peaks = (middle > threshold) & (middle > flux[:-2]) & (middle > flux[2:])
    indices = np.nonzero(peaks)[0] + 1

    onsets = tuple(float(timestamps[i + 1]) for i in indices)
    logger.debug("found %d onsets (threshold %.4f)", len(onsets), threshold)
    return onsets


def autocorrelation_tempo(onsets):
    """BPM from the autocorrelation of an onset impulse train

    Returns 0 when fewer than 4 onsets are given or no lag in the
    60-200 BPM range correlates.
    """
    if len(onsets) < MIN_AUTOCORR_ONSETS:
        return 0.0

    onsets = np.asarray(onsets, dtype=np.float64)
    offsets = np.rint((onsets - onsets[0]) * IMPULSE_RATE).astype(int)
    train = np.zeros(offsets[-1] + 1)
    train[offsets] = 1.0

    min_lag = int(60 * IMPULSE_RATE / MAX_BPM)
    max_lag = min(int(60 * IMPULSE_RATE / MIN_BPM), len(train) // 2)

    best_lag = 0
    best_corr = 0.0
    for lag in range(min_lag, max_lag + 1):
        corr = float(np.dot(train[:-lag], train[lag:]))
        if corr > best_corr:
            best_corr = corr
            best_lag = lag

    if best_lag == 0:
        return 0.0
    return 60.0 * IMPULSE_RATE / best_lag


def envelope_peak_tempo(envelope_values, timestamps):
    """BPM from the mean spacing of strong envelope peaks

    Peaks are strict local maxima above 60% of the envelope maximum.
    """
    values = np.asarray(envelope_values, dtype=np.float64)
    if len(values) < 3:
        return 0.0

    threshold = values.max() * ENVELOPE_PEAK_RATIO
    middle = values[1:-1]
    peaks = (middle > threshold) & (middle > values[:-2]) & (middle > values[2:])
    peak_times = np.asarray(timestamps, dtype=np.float64)[np.nonzero(peaks)[0] + 1]

    if len(peak_times) < 2:
        return 0.0

    avg_interval = float(np.mean(np.diff(peak_times)))
    return 60.0 / avg_interval if avg_interval > 0 else 0.0


def estimate_tempo(onsets, envelope):
    """Tempo in BPM (0 when it cannot be determined)

    Args:
        onsets: onset times from detect_onsets().
        envelope: AmplitudeEnvelope of the same buffer.
    """
    if len(envelope) < MIN_ENVELOPE_WINDOWS:
        return 0.0

    if len(onsets) < MIN_AUTOCORR_ONSETS:
        # not enough onsets for autocorrelation
        return envelope_peak_tempo(envelope.values, envelope.timestamps)

    return autocorrelation_tempo(onsets)


def track_beats(onsets, tempo):
    """Onsets aligned to a beat grid starting at the first onset

    Each grid point keeps the nearest onset within 30% of the beat interval;
    grid points without one are skipped.
    """
    if tempo <= 0 or len(onsets) < 2:
        return ()

    onsets = np.asarray(onsets, dtype=np.float64)
    interval = 60.0 / tempo
    span = onsets[-1] - onsets[0]
    grid = onsets[0] + interval * np.arange(int(np.floor(span / interval)) + 1)

    beats = []
    for beat_time in grid:
        distances = np.abs(onsets - beat_time)
        nearest = int(np.argmin(distances))
        if distances[nearest] < interval * BEAT_TOLERANCE:
            beats.append(float(onsets[nearest]))

    return tuple(beats)
