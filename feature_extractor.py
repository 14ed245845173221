"""
Full feature extraction for one SampleBuffer

Pipeline:
    1. analyze_spectrum -> Spectrogram
    2. amplitude envelope and zero-crossing rate from the samples
    3. centroid, rolloff and harmonic complexity from the spectrogram
    4. onsets -> tempo -> beat grid

The spectrogram is computed once and shared by every downstream feature.
Key detection is not attempted; FeatureSet.key stays "Unknown".
"""

import logging

from harmonic_analyzer import harmonic_complexity
from onset_detector import detect_onsets, estimate_tempo, track_beats
from sculpture_errors import InvalidAudioData
from sculpture_params import AnalysisConfig
from sculpture_progress import check_cancelled, report
from sculpture_types import FeatureSet
from spectral_analyzer import analyze_spectrum
from temporal_features import (
    extract_amplitude_envelope,
    spectral_centroid,
    spectral_rolloff,
    zero_crossing_rate,
)

logger = logging.getLogger(__name__)

STEP_ID = "feature-extraction"


def validate_buffer(buffer):
    if buffer is None:
        raise InvalidAudioData("No sample buffer supplied")
    if buffer.sample_rate <= 0:
        raise InvalidAudioData(f"sample_rate must be positive, got {buffer.sample_rate}")
    if buffer.sample_count == 0:
        raise InvalidAudioData("Sample buffer is empty")


def extract_features(buffer, config=None, available_memory=None,
                     cancel_token=None, progress=None):
    """Run every analyzer over the buffer and collect a FeatureSet

    Raises:
        InvalidAudioData: buffer missing, empty or with a bad sample rate.
        MemoryLimitExceeded: spectrogram would not fit the memory budget.
        Cancelled: the token was set during analysis.
    """
    validate_buffer(buffer)
    config = config or AnalysisConfig()

    spectrogram = analyze_spectrum(
        buffer,
        config,
        available_memory=available_memory,
        cancel_token=cancel_token,
        progress=progress,
    )

    check_cancelled(cancel_token, STEP_ID)
    report(progress, STEP_ID, 20, "Extracting amplitude envelope...")
    envelope = extract_amplitude_envelope(buffer)
    zcr = zero_crossing_rate(buffer)

    check_cancelled(cancel_token, STEP_ID)
    report(progress, STEP_ID, 40, "Computing spectral shape...")
    centroid = spectral_centroid(spectrogram)
    rolloff = spectral_rolloff(spectrogram, config.rolloff_threshold)

    check_cancelled(cancel_token, STEP_ID)
    report(progress, STEP_ID, 60, "Analyzing harmonic content...")
    complexity = harmonic_complexity(spectrogram)

    check_cancelled(cancel_token, STEP_ID)
    report(progress, STEP_ID, 80, "Detecting onsets and tempo...")
    onsets = detect_onsets(spectrogram)
    tempo = estimate_tempo(onsets, envelope)
    beats = track_beats(onsets, tempo)

    report(progress, STEP_ID, 100, "Feature extraction complete")
    logger.info(
        "extracted features: %d frames, %d envelope windows, %d onsets, tempo %.1f BPM",
        len(spectrogram), len(envelope), len(onsets), tempo,
    )

    return FeatureSet(
        spectrogram=spectrogram,
        envelope=envelope,
        spectral_centroid=centroid,
        spectral_rolloff=rolloff,
        zero_crossing_rate=zcr,
        harmonic_complexity=complexity,
        onsets=onsets,
        tempo=tempo,
        beat_times=beats,
    )
