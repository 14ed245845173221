"""
Value types passed between the analysis and mesh stages

All types are frozen dataclasses. numpy buffers are copied to float64 (or
int64 for face indices) and marked read-only on construction, so a stage can
never mutate an earlier stage's output. Array-holding types use eq=False:
compare their arrays explicitly with numpy.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


def _frozen_array(values, dtype=np.float64):
    array = np.array(values, dtype=dtype, copy=True)
    array.flags.writeable = False
    return array


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """Raw audio samples at a known sample rate

    samples is (n,) for mono or (channels, n) for multi-channel audio.
    """

    samples: np.ndarray
    sample_rate: int
    channels: int = 1

    def __post_init__(self):
        object.__setattr__(self, 'samples', _frozen_array(self.samples))
        if self.samples.ndim == 2:
            object.__setattr__(self, 'channels', self.samples.shape[0])

    @property
    def sample_count(self):
        return self.samples.shape[-1] if self.samples.ndim else 0

    @property
    def duration_sec(self):
        if self.sample_rate <= 0:
            return 0.0
        return self.sample_count / float(self.sample_rate)

    def first_channel(self):
        """Analysis always runs on the first channel"""
        if self.samples.ndim == 2:
            return self.samples[0]
        return self.samples


@dataclass(frozen=True, eq=False)
class SpectralFrame:
    """Magnitudes of the first window_size/2 DFT bins at one point in time"""

    magnitudes: np.ndarray
    time_sec: float

    def __post_init__(self):
        object.__setattr__(self, 'magnitudes', _frozen_array(self.magnitudes))


@dataclass(frozen=True, eq=False)
class Spectrogram:
    """Ordered spectral frames sharing sample rate and window size"""

    frames: tuple
    sample_rate: int
    window_size: int
    hop_size: int

    def __post_init__(self):
        object.__setattr__(self, 'frames', tuple(self.frames))

    def __len__(self):
        return len(self.frames)

    @property
    def bin_count(self):
        return self.window_size // 2

    @property
    def magnitudes(self):
        """(frames, bins) matrix of every frame's magnitudes"""
        if not self.frames:
            return np.zeros((0, self.bin_count))
        return np.stack([frame.magnitudes for frame in self.frames])

    @property
    def timestamps(self):
        return np.array([frame.time_sec for frame in self.frames], dtype=np.float64)

    def bin_frequency(self, k):
        """Centre frequency of bin k in Hz"""
        return k * self.sample_rate / self.window_size

    def bin_frequencies(self):
        return np.arange(self.bin_count) * self.sample_rate / self.window_size


@dataclass(frozen=True, eq=False)
class AmplitudeEnvelope:
    """Peak absolute amplitude per fixed window, plus global peak and RMS"""

    values: np.ndarray
    timestamps: np.ndarray
    peak: float
    rms: float
    window_size: int

    def __post_init__(self):
        object.__setattr__(self, 'values', _frozen_array(self.values))
        object.__setattr__(self, 'timestamps', _frozen_array(self.timestamps))

    def __len__(self):
        return len(self.values)


@dataclass(frozen=True, eq=False)
class FeatureSet:
    """Everything the mesh stage and the renderers need from one buffer

    Spectral series (centroid, rolloff, harmonic_complexity) have one value
    per spectrogram frame. zero_crossing_rate has one value per 25 ms
    analysis window.
    """

    spectrogram: Spectrogram
    envelope: AmplitudeEnvelope
    spectral_centroid: np.ndarray
    spectral_rolloff: np.ndarray
    zero_crossing_rate: np.ndarray
    harmonic_complexity: np.ndarray
    onsets: tuple = ()
    tempo: float = 0.0
    beat_times: tuple = ()
    key: str = "Unknown"

    def __post_init__(self):
        for name in ('spectral_centroid', 'spectral_rolloff',
                     'zero_crossing_rate', 'harmonic_complexity'):
            object.__setattr__(self, name, _frozen_array(getattr(self, name)))
        object.__setattr__(self, 'onsets', tuple(float(t) for t in self.onsets))
        object.__setattr__(self, 'beat_times', tuple(float(t) for t in self.beat_times))

    @property
    def frame_count(self):
        return len(self.spectrogram)

    @property
    def frequency_data(self):
        return self.spectrogram.magnitudes

    @property
    def amplitude_envelope(self):
        return self.envelope.values


@dataclass(frozen=True)
class BoundingBox:
    min: tuple
    max: tuple

    @property
    def size(self):
        return tuple(hi - lo for lo, hi in zip(self.min, self.max))


@dataclass(frozen=True, eq=False)
class Mesh:
    """Indexed triangle mesh

    vertices (n, 3), faces (m, 3) indices into vertices, normals (n, 3) unit
    vectors, uvs (n, 2) or None.
    """

    vertices: np.ndarray
    faces: np.ndarray
    normals: np.ndarray
    bounding_box: BoundingBox
    volume: float
    surface_area: float
    is_manifold: bool
    uvs: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(self, 'vertices', _frozen_array(self.vertices).reshape(-1, 3))
        object.__setattr__(self, 'faces', _frozen_array(self.faces, np.int64).reshape(-1, 3))
        object.__setattr__(self, 'normals', _frozen_array(self.normals).reshape(-1, 3))
        if self.uvs is not None:
            object.__setattr__(self, 'uvs', _frozen_array(self.uvs).reshape(-1, 2))

    @property
    def vertex_count(self):
        return len(self.vertices)

    @property
    def face_count(self):
        return len(self.faces)

    def flat_vertices(self):
        """x0, y0, z0, x1, ... as expected by buffer-geometry consumers"""
        return self.vertices.reshape(-1)

    def flat_faces(self):
        return self.faces.reshape(-1)


@dataclass(frozen=True)
class MeshIntegrityWarning:
    """Non-fatal mesh finding; logged and reported, never raised"""

    kind: str
    count: int
    message: str


@dataclass(frozen=True)
class MeshValidationReport:
    is_valid: bool
    non_manifold_edges: int = 0
    boundary_edges: int = 0
    non_manifold_vertices: tuple = ()
    degenerate_faces: tuple = ()
    isolated_vertices: tuple = ()
    min_wall_thickness: float = 0.0
    warnings: tuple = field(default_factory=tuple)
    errors: tuple = field(default_factory=tuple)
    suggestions: tuple = field(default_factory=tuple)
