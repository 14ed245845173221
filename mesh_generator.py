"""
Feature -> mesh synthesis

Builds a cylindrical sculpture: time runs up the cylinder, each ring's
height comes from the frame's frequency balance and its radius from the
amplitude envelope. The multipliers below were tuned by eye and are kept
exactly as observed. Spectra and envelope are both normalised by their
peaks before mapping.
"""

import logging

import numpy as np

from mesh_geometry import build_mesh
from mesh_validator import repair_mesh, validate_mesh
from sculpture_errors import InvalidAudioData, check_memory_budget
from sculpture_params import SculptureParams
from sculpture_progress import check_cancelled, report

logger = logging.getLogger(__name__)

STEP_ID = "mesh-generation"

BASE_RADIUS = 1.0
BASE_HEIGHT = 2.0
MIN_SEGMENTS = 8

# band split as fractions of the frame's bins
LOW_BAND_END = 0.1
MID_BAND_END = 0.4

# frequency -> height
LOW_BAND_WEIGHT = 5.0
MID_BAND_WEIGHT = 2.0
HIGH_BAND_WEIGHT = 1.0
HEIGHT_FLOOR = 0.2
HEIGHT_SPAN = 4.0  # 0.2x .. 4.2x base height

# amplitude -> radius
SENSITIVITY_GAIN = 3.0
SMOOTHING_GAIN = 2.0
RADIUS_FLOOR = 0.2
RADIUS_SPAN = 2.5  # 0.2x .. 2.7x base radius (soft knee)

BYTES_PER_VALUE = 4


def segment_counts(resolution):
    """(radial_segments, height_segments) for a resolution setting"""
    segments = max(MIN_SEGMENTS, int(resolution) // 4)
    return segments, segments


def estimate_memory(radial_segments, height_segments):
    """Bytes for positions, normals, uvs and face indices"""
    vertex_count = (height_segments + 1) * (radial_segments + 1)
    face_count = height_segments * radial_segments * 2
    return (vertex_count * (3 + 3 + 2) + face_count * 3) * BYTES_PER_VALUE


def band_averages(spectrum):
    """Mean magnitude of the low, mid and high bands"""
    size = len(spectrum)
    low_end = int(size * LOW_BAND_END)
    mid_end = int(size * MID_BAND_END)

    def mean(band):
        return float(np.mean(band)) if len(band) else 0.0

    return mean(spectrum[:low_end]), mean(spectrum[low_end:mid_end]), mean(spectrum[mid_end:])


def map_frequency_to_height(spectrum, mapping, base_height=BASE_HEIGHT):
    """Ring height from a 0-1 normalised magnitude spectrum"""
    low, mid, high = band_averages(spectrum)

    multiplier = (
        low * mapping.low_freq_to_height * LOW_BAND_WEIGHT
        + mid * mapping.mid_freq_to_width * MID_BAND_WEIGHT
        + high * mapping.high_freq_to_depth * HIGH_BAND_WEIGHT
    )
    multiplier = min(max(multiplier, 0.0), 1.0)

    return base_height * (HEIGHT_FLOOR + multiplier * HEIGHT_SPAN)


def map_amplitude_to_radius(amplitude, mapping, base_radius=BASE_RADIUS):
    """Ring radius from a 0-1 normalised envelope value

    The gained amplitude goes through a soft knee, 1 - exp(-x), instead of
    a hard clip at 1. Quiet passages keep the linear x3 * x2 response, and
    loud ones approach the 2.7x ceiling without collapsing onto it, so
    rings stay distinguishable even at the default gain of 3. The price is
    that the ceiling is only reached asymptotically.
    """
    sensitized = amplitude * mapping.sensitivity * SENSITIVITY_GAIN
    gained = max(sensitized * mapping.smoothing * SMOOTHING_GAIN, 0.0)
    displacement = float(-np.expm1(-gained))

    return base_radius * (RADIUS_FLOOR + displacement * RADIUS_SPAN)


def sample_index(ratio, length):
    """Index into a series of `length` values at a 0-1 position"""
    return int(np.floor(ratio * (length - 1)))


def _validate_features(features):
    if features is None:
        raise InvalidAudioData("Audio features data is missing")
    if len(features.spectrogram) == 0:
        raise InvalidAudioData("Audio features contain no spectral frames")
    if len(features.envelope) == 0:
        raise InvalidAudioData("Audio features contain no amplitude envelope")


def generate_mesh(features, params=None, available_memory=None,
                  cancel_token=None, progress=None, auto_repair=True):
    """Synthesize a cylindrical sculpture mesh from a FeatureSet

    Args:
        features: FeatureSet from feature_extractor.extract_features().
        params: SculptureParams; clamped into UI ranges before use.
        available_memory: byte budget or None to skip the check.
        cancel_token: optional CancellationToken, polled per ring and per
            face row.
        progress: optional callback (step_id, percent, message).
        auto_repair: repair the mesh when validation reports errors.

    Raises:
        InvalidAudioData: features missing or empty.
        MemoryLimitExceeded: mesh buffers would not fit the budget.
        Cancelled: the token was set during generation.
    """
    _validate_features(features)
    params = (params or SculptureParams()).clamped()

    radial_segments, height_segments = segment_counts(params.resolution)
    check_memory_budget(
        "mesh generation",
        estimate_memory(radial_segments, height_segments),
        available_memory,
    )

    frames = features.spectrogram.magnitudes
    envelope = features.envelope.values

    # normalize to 0-1 range
    peak_magnitude = float(frames.max())
    if peak_magnitude > 0:
        frames = frames / peak_magnitude
    peak_amplitude = float(envelope.max())
    if peak_amplitude > 0:
        envelope = envelope / peak_amplitude

    columns = np.arange(radial_segments + 1)
    angles = columns / radial_segments * 2 * np.pi
    cos_a = np.cos(angles)
    sin_a = np.sin(angles)
    # sin(2*pi) is not exactly 0; the seam column must coincide with column 0
    cos_a[-1], sin_a[-1] = cos_a[0], sin_a[0]

    vertices = []
    uvs = []

    for h in range(height_segments + 1):
        check_cancelled(cancel_token, STEP_ID)

        height_ratio = h / height_segments
        spectrum = frames[sample_index(height_ratio, len(frames))]
        amplitude = float(envelope[sample_index(height_ratio, len(envelope))])

        height = map_frequency_to_height(spectrum, params.frequency_mapping)
        radius = map_amplitude_to_radius(amplitude, params.amplitude_mapping)

        # ring of vertices; the last column closes the seam at 2*pi
        ring = np.column_stack([
            radius * cos_a,
            np.full(len(columns), height * height_ratio),
            radius * sin_a,
        ])
        vertices.append(ring)
        uvs.append(np.column_stack([columns / radial_segments, np.full(len(columns), height_ratio)]))

        if h % max(1, height_segments // 10) == 0:
            report(progress, STEP_ID, (h + 1) / (height_segments + 1) * 50,
                   f"Generating vertices: ring {h + 1}/{height_segments + 1}")

    faces = []
    for h in range(height_segments):
        check_cancelled(cancel_token, STEP_ID)
        faces.extend(_ring_faces(h, radial_segments))

        if h % max(1, height_segments // 5) == 0:
            report(progress, STEP_ID, 50 + (h + 1) / height_segments * 25,
                   f"Generating faces: row {h + 1}/{height_segments}")

    report(progress, STEP_ID, 75, "Calculating normals...")
    mesh = build_mesh(np.vstack(vertices), np.array(faces, dtype=np.int64), np.vstack(uvs))
    report(progress, STEP_ID, 90, "Finalizing mesh...")

    logger.debug("generated mesh: %d vertices, %d faces",
                 mesh.vertex_count, mesh.face_count)

    validation = validate_mesh(mesh)
    if auto_repair and not validation.is_valid:
        logger.warning("generated mesh has issues: %s", "; ".join(validation.errors))
        report(progress, STEP_ID, 95, "Repairing mesh issues...")
        mesh = repair_mesh(mesh)

    report(progress, STEP_ID, 100, "Mesh generation complete")
    return mesh


def _ring_faces(h, radial_segments):
    """Two triangles per quad between ring h and ring h+1

    Winding (current, next, current+1) puts the normal outside the cylinder.
    """
    faces = []
    for r in range(radial_segments):
        current = h * (radial_segments + 1) + r
        next_ = current + radial_segments + 1
        faces.append([current, next_, current + 1])
        faces.append([next_, next_ + 1, current + 1])
    return faces
