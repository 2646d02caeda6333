import asyncio

import numpy as np
import pytest

try:
    import sounddevice as sd
    from adapters.sounddevice_audio import SounddeviceCapture
    HAS_SOUNDDEVICE = True
except (ImportError, OSError):
    HAS_SOUNDDEVICE = False

from domain.errors import CaptureUnavailable


def _has_input_device() -> bool:
    if not HAS_SOUNDDEVICE:
        return False
    try:
        return sd.query_devices(kind="input")["max_input_channels"] > 0
    except (sd.PortAudioError, ValueError):
        return False


class FakeInputStream:
    instances: list["FakeInputStream"] = []

    def __init__(self, device, samplerate, channels, dtype, blocksize, callback) -> None:
        self.samplerate = samplerate
        self.blocksize = blocksize
        self.callback = callback
        self.started = False
        self.closed = False
        FakeInputStream.instances.append(self)

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True

    def push(self, value: float) -> None:
        indata = np.full((self.blocksize, 1), value, dtype=np.float32)
        self.callback(indata, self.blocksize, None, None)


@pytest.mark.skipif(not HAS_SOUNDDEVICE, reason="sounddevice not available")
class TestSounddeviceCapture:
    @pytest.fixture(autouse=True)
    def fake_device(self, monkeypatch):
        FakeInputStream.instances = []
        monkeypatch.setattr(sd, "InputStream", FakeInputStream)
        monkeypatch.setattr(
            sd,
            "query_devices",
            lambda device=None, kind=None: {"default_samplerate": 48000.0, "max_input_channels": 1},
        )

    @pytest.mark.asyncio
    async def test_captures_at_native_rate(self):
        capture = SounddeviceCapture(frame_duration_ms=100, gain=2.0)
        await capture.start()
        stream = FakeInputStream.instances[0]
        assert capture.sample_rate == 48000
        assert stream.blocksize == 4800
        assert stream.started

        stream.push(0.25)
        buffers = capture.read_buffers()
        buffer = await asyncio.wait_for(anext(buffers), timeout=1.0)
        assert buffer.sample_rate == 48000
        assert len(buffer.samples) == 4800
        assert np.allclose(buffer.samples, 0.5)

        await capture.stop()
        assert stream.closed

    @pytest.mark.asyncio
    async def test_stop_ends_reader(self):
        capture = SounddeviceCapture()
        await capture.start()
        buffers = capture.read_buffers()
        reader = asyncio.create_task(anext(buffers, None))
        await asyncio.sleep(0)
        await capture.stop()
        assert await asyncio.wait_for(reader, timeout=2.0) is None

    @pytest.mark.asyncio
    async def test_callback_after_stop_is_ignored(self):
        capture = SounddeviceCapture()
        await capture.start()
        stream = FakeInputStream.instances[0]
        await capture.stop()
        stream.push(0.1)

    @pytest.mark.asyncio
    async def test_missing_device_raises_capture_unavailable(self, monkeypatch):
        def no_device(device=None, kind=None):
            raise sd.PortAudioError("Error querying device -1")

        monkeypatch.setattr(sd, "query_devices", no_device)
        capture = SounddeviceCapture()
        with pytest.raises(CaptureUnavailable):
            await capture.start()


@pytest.mark.skipif(not _has_input_device(), reason="no audio input device")
class TestAudioDeviceDiscovery:
    def test_default_input_exists(self):
        default_input = sd.query_devices(kind="input")
        assert default_input is not None
        assert default_input["max_input_channels"] > 0

    def test_default_input_reports_sample_rate(self):
        default_input = sd.query_devices(kind="input")
        assert default_input["default_samplerate"] > 0
