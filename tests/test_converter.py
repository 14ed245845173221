"""tests/test_converter.py: file in, STL out."""

import os

import numpy as np
import pytest
from scipy.io import wavfile

from converter import SculptureConverter, load_sample_buffer
from sculpture_errors import Cancelled
from sculpture_params import get_preset
from sculpture_progress import CancellationToken

SR = 22050


@pytest.fixture
def wav_path(tmp_path, tone_buffer):
    path = tmp_path / "clicks.wav"
    wavfile.write(str(path), SR, (tone_buffer.samples * 32767 * 0.5).astype(np.int16))
    return str(path)


class TestLoad:
    def test_load_sample_buffer(self, wav_path):
        buffer = load_sample_buffer(wav_path)
        assert buffer.sample_rate == SR
        assert buffer.channels == 1
        assert buffer.duration_sec == pytest.approx(3.0, abs=0.01)

    def test_duration_limit(self, wav_path):
        buffer = load_sample_buffer(wav_path, duration=1.0)
        assert buffer.duration_sec == pytest.approx(1.0, abs=0.01)


class TestSculptureConverter:
    def test_generate_sculpture(self, wav_path, tmp_path):
        updates = []
        converter = SculptureConverter(
            wav_path,
            str(tmp_path / "clicks_sculpture"),
            params=get_preset("architectural"),
            listener=lambda overall, step, message: updates.append(overall),
        )

        stl_file, mesh, features = converter.generate_sculpture(duration=3)

        assert os.path.exists(stl_file)
        assert stl_file.endswith("clicks_sculpture.stl")
        assert mesh.vertex_count == 9 * 9  # resolution 32 -> 8 segments
        assert features.frame_count > 0
        assert converter.tracker.overall_progress == pytest.approx(100.0)
        assert updates == sorted(updates)

    def test_cancelled(self, wav_path, tmp_path):
        token = CancellationToken()
        token.cancel()
        converter = SculptureConverter(wav_path, str(tmp_path / "x"), cancel_token=token)
        with pytest.raises(Cancelled):
            converter.generate_sculpture(duration=3)
        assert not os.path.exists(str(tmp_path / "x.stl"))
