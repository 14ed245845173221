"""
Analysis and sculpture parameters

Immutable config objects passed explicitly into every stage; nothing in the
pipeline reads global state.
"""

import os
from dataclasses import dataclass, field, replace

WINDOW_FUNCTIONS = frozenset({"hann", "hamming", "blackman"})
STYLE_PRESETS = ("organic", "geometric", "abstract", "architectural")
SYMMETRY_MODES = frozenset({"none", "radial", "bilateral"})

MIN_RESOLUTION = 16
MAX_RESOLUTION = 128


def _clamp(value, low, high):
    return max(low, min(high, value))


@dataclass(frozen=True)
class AnalysisConfig:
    """Spectral analysis settings

    Attributes:
        window_size: transform length in samples, a power of two.
        hop_size: samples between consecutive window starts.
        window_function: one of hann, hamming, blackman.
        rolloff_threshold: energy fraction used by spectral rolloff.
    """

    window_size: int = 2048
    hop_size: int = 512
    window_function: str = "hann"
    rolloff_threshold: float = 0.85

    def __post_init__(self):
        if self.window_size < 2 or self.window_size & (self.window_size - 1):
            raise ValueError(f"window_size must be a power of two, got {self.window_size}")
        if self.hop_size <= 0:
            raise ValueError(f"hop_size must be positive, got {self.hop_size}")
        if self.window_function not in WINDOW_FUNCTIONS:
            raise ValueError(
                f"Unknown window_function {self.window_function!r}, "
                f"valid options: {sorted(WINDOW_FUNCTIONS)}"
            )
        if not 0.0 < self.rolloff_threshold <= 1.0:
            raise ValueError(
                f"rolloff_threshold must be in (0, 1], got {self.rolloff_threshold}"
            )


@dataclass(frozen=True)
class FrequencyMapping:
    """0-1 influence of each frequency band on the ring height"""

    low_freq_to_height: float = 0.7
    mid_freq_to_width: float = 0.5
    high_freq_to_depth: float = 0.3


@dataclass(frozen=True)
class AmplitudeMapping:
    """Amplitude response (0-2) and temporal smoothing (0-1)"""

    sensitivity: float = 1.0
    smoothing: float = 0.5


@dataclass(frozen=True)
class SculptureParams:
    frequency_mapping: FrequencyMapping = field(default_factory=FrequencyMapping)
    amplitude_mapping: AmplitudeMapping = field(default_factory=AmplitudeMapping)
    style_preset: str = "organic"
    resolution: int = 64
    symmetry: str = "none"

    def __post_init__(self):
        if self.style_preset not in STYLE_PRESETS:
            raise ValueError(f"Unknown style_preset {self.style_preset!r}")
        if self.symmetry not in SYMMETRY_MODES:
            raise ValueError(f"Unknown symmetry {self.symmetry!r}")
        if self.resolution <= 0:
            raise ValueError(f"resolution must be positive, got {self.resolution}")

    def clamped(self):
        """Copy with every control pulled back into its UI range"""
        freq = self.frequency_mapping
        amp = self.amplitude_mapping
        return replace(
            self,
            frequency_mapping=FrequencyMapping(
                low_freq_to_height=_clamp(freq.low_freq_to_height, 0.0, 1.0),
                mid_freq_to_width=_clamp(freq.mid_freq_to_width, 0.0, 1.0),
                high_freq_to_depth=_clamp(freq.high_freq_to_depth, 0.0, 1.0),
            ),
            amplitude_mapping=AmplitudeMapping(
                sensitivity=_clamp(amp.sensitivity, 0.0, 2.0),
                smoothing=_clamp(amp.smoothing, 0.0, 1.0),
            ),
            resolution=int(_clamp(round(self.resolution), MIN_RESOLUTION, MAX_RESOLUTION)),
        )

    def to_dict(self):
        return {
            'frequency_mapping': {
                'low_freq_to_height': self.frequency_mapping.low_freq_to_height,
                'mid_freq_to_width': self.frequency_mapping.mid_freq_to_width,
                'high_freq_to_depth': self.frequency_mapping.high_freq_to_depth,
            },
            'amplitude_mapping': {
                'sensitivity': self.amplitude_mapping.sensitivity,
                'smoothing': self.amplitude_mapping.smoothing,
            },
            'style_preset': self.style_preset,
            'resolution': self.resolution,
            'symmetry': self.symmetry,
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise TypeError(f"sculpture params must be an object, got {type(data).__name__}")
        freq = data.get('frequency_mapping', {})
        amp = data.get('amplitude_mapping', {})
        return cls(
            frequency_mapping=FrequencyMapping(**freq),
            amplitude_mapping=AmplitudeMapping(**amp),
            style_preset=data.get('style_preset', "organic"),
            resolution=int(data.get('resolution', 64)),
            symmetry=data.get('symmetry', "none"),
        )


PRESETS = {
    "organic": SculptureParams(
        frequency_mapping=FrequencyMapping(0.8, 0.6, 0.4),
        amplitude_mapping=AmplitudeMapping(sensitivity=1.2, smoothing=0.7),
        style_preset="organic",
        resolution=64,
        symmetry="none",
    ),
    "geometric": SculptureParams(
        frequency_mapping=FrequencyMapping(0.9, 0.3, 0.6),
        amplitude_mapping=AmplitudeMapping(sensitivity=0.8, smoothing=0.2),
        style_preset="geometric",
        resolution=48,
        symmetry="bilateral",
    ),
    "abstract": SculptureParams(
        frequency_mapping=FrequencyMapping(0.5, 0.8, 0.7),
        amplitude_mapping=AmplitudeMapping(sensitivity=1.5, smoothing=0.3),
        style_preset="abstract",
        resolution=80,
        symmetry="none",
    ),
    "architectural": SculptureParams(
        frequency_mapping=FrequencyMapping(1.0, 0.4, 0.2),
        amplitude_mapping=AmplitudeMapping(sensitivity=0.6, smoothing=0.8),
        style_preset="architectural",
        resolution=32,
        symmetry="radial",
    ),
}


def get_preset(name):
    """Look up a built-in preset by name"""
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(
            f"Unknown preset {name!r}, valid options: {sorted(PRESETS)}"
        ) from None


def memory_budget_from_env(default_mb=512):
    """Byte budget handed to the pipeline by the server process"""
    return int(float(os.environ.get('MEMORY_BUDGET_MB', default_mb)) * 1024 * 1024)
