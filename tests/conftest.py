import numpy as np
import pytest
import soundfile as sf


@pytest.fixture
def make_wav():
    """Write interleaved samples to a WAV file and return its path."""
    def _make(path, samples, channels=1, subtype="PCM_16", samplerate=44100):
        dtype = {"PCM_16": np.int16, "PCM_32": np.int32, "FLOAT": np.float32}[subtype]
        data = np.asarray(samples, dtype=dtype).reshape(-1, channels)
        path.parent.mkdir(parents=True, exist_ok=True)
        sf.write(str(path), data, samplerate, subtype=subtype)
        return path
    return _make


@pytest.fixture
def project(tmp_path, make_wav):
    """A working tree with two tracked WAVs and one untracked file."""
    root = tmp_path / "song"
    make_wav(root / "drums.wav", [0, 100, -100, 200])
    make_wav(root / "stems" / "bass.wav", [5, 6, 7, 8])
    (root / "notes.txt").write_text("mix notes")
    return root
