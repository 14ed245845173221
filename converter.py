import logging

import librosa
import numpy as np

from feature_extractor import extract_features
from mesh_generator import generate_mesh
from sculpture_params import AnalysisConfig, SculptureParams
from sculpture_progress import ProgressStep, ProgressTracker
from sculpture_types import SampleBuffer
from stl_to_web import save_stl

logger = logging.getLogger(__name__)

# Audio -> SampleBuffer: librosa decodes and resamples any supported file
# Features: spectrum, envelope, onsets/tempo and harmonic content per frame
# Mesh: frequency balance drives ring height, amplitude drives ring radius
# STL Export: saves as 3D printable STL files

PIPELINE_STEPS = (
    ProgressStep("frequency-analysis", "Frequency analysis", weight=2.0),
    ProgressStep("feature-extraction", "Feature extraction", weight=1.0),
    ProgressStep("mesh-generation", "Mesh generation", weight=1.0),
)


def load_sample_buffer(audio_file, sample_rate=22050, duration=None):
    """Decode an audio file to a mono SampleBuffer"""
    y, sr = librosa.load(audio_file, sr=sample_rate, mono=True, duration=duration)
    logger.debug("loaded %s: %d samples at %d Hz", audio_file, len(y), sr)
    return SampleBuffer(samples=y, sample_rate=int(sr))


class SculptureConverter:
    def __init__(self, audio_file, output_name="audio_sculpture", params=None,
                 analysis_config=None, available_memory=None,
                 cancel_token=None, listener=None):
        self.audio_file = audio_file
        self.output_name = output_name
        self.sample_rate = 22050  # good balance of detail/file size
        self.params = params or SculptureParams()
        self.analysis_config = analysis_config or AnalysisConfig()
        self.available_memory = available_memory
        self.cancel_token = cancel_token
        self.tracker = ProgressTracker(
            [ProgressStep(s.id, s.name, s.weight) for s in PIPELINE_STEPS],
            listener=listener,
        )

    def load_sample_buffer(self, duration_limit=30):
        return load_sample_buffer(self.audio_file, self.sample_rate, duration_limit)

    def analyze(self, buffer):
        """SampleBuffer -> FeatureSet"""
        self.tracker.start_step("frequency-analysis", "Analyzing frequencies...")
        features = extract_features(
            buffer,
            self.analysis_config,
            available_memory=self.available_memory,
            cancel_token=self.cancel_token,
            progress=self.tracker,
        )
        self.tracker.complete_step("frequency-analysis")
        self.tracker.complete_step("feature-extraction")
        return features

    def build_mesh(self, features):
        """FeatureSet -> validated Mesh"""
        self.tracker.start_step("mesh-generation", "Generating mesh...")
        mesh = generate_mesh(
            features,
            self.params,
            available_memory=self.available_memory,
            cancel_token=self.cancel_token,
            progress=self.tracker,
        )
        self.tracker.complete_step("mesh-generation")
        return mesh

    def generate_sculpture(self, duration=20, filename=None):
        """Full pipeline: audio -> 3D model

        Returns:
            (stl_file, mesh, features)
        """
        logger.info("processing %s", self.audio_file)

        buffer = self.load_sample_buffer(duration)
        features = self.analyze(buffer)
        mesh = self.build_mesh(features)

        # export to STL
        stl_file = save_stl(mesh, filename or f"{self.output_name}.stl")

        return stl_file, mesh, features


# usage example
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    converter = SculptureConverter("your_song.wav", "my_song_sculpture")
    stl_file, mesh, features = converter.generate_sculpture(duration=30)

    print(f"3D model ready: {stl_file}")
    print(f"Mesh: {mesh.vertex_count} vertices, {mesh.face_count} faces")
    print(f"Tempo: {features.tempo:.1f} BPM, {len(features.onsets)} onsets")
