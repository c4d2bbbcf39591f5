import io

import numpy as np
import pytest
import soundfile as sf

from config import Config
from tests.helpers import FakeClock

TEST_SIGNING_SECRET = "test-signing-secret"


def make_wav_bytes(duration: float = 2.0, sample_rate: int = 16000) -> bytes:
    """Render a 440 Hz tone as 16-bit PCM WAV bytes."""
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    waveform = (0.1 * np.sin(2 * np.pi * 440 * t)).astype(np.float32)
    buffer = io.BytesIO()
    sf.write(buffer, waveform, sample_rate, format="WAV", subtype="PCM_16")
    return buffer.getvalue()


@pytest.fixture
def synthetic_wav_bytes() -> bytes:
    """Short valid WAV file (2s, 16kHz, clear tone)."""
    return make_wav_bytes()


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def test_config(upload_dir) -> Config:
    return Config(
        signing_secret=TEST_SIGNING_SECRET,
        upload_dir=upload_dir,
        supabase_url="http://supabase.test",
        supabase_service_role_key="service-role-key",
        supabase_anon_key="anon-key",
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_environ(monkeypatch):
    """Fixture to set environment variables in tests."""
    def _set_env(**kwargs):
        for key, value in kwargs.items():
            monkeypatch.setenv(key, value)
    return _set_env
