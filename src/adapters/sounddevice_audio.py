import asyncio
import logging
import os
from collections.abc import AsyncIterator

import janus
import numpy as np
import sounddevice as sd

from domain.errors import CaptureUnavailable
from domain.resampler import AudioSampleBuffer

logger = logging.getLogger(__name__)


class SounddeviceCapture:
    def __init__(
        self,
        device: str | int | None = None,
        frame_duration_ms: int = 100,
        gain: float = 1.0,
    ) -> None:
        self._device = device
        self._frame_duration_ms = frame_duration_ms
        self._gain = gain
        self._sample_rate = 0
        self._stream: sd.InputStream | None = None
        self._queue: janus.Queue[AudioSampleBuffer] | None = None

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    async def start(self) -> None:
        self._queue = queue = janus.Queue(maxsize=100)
        device = self._resolve_device()
        try:
            info = sd.query_devices(device, kind="input")
            self._sample_rate = int(info["default_samplerate"])
            blocksize = int(self._sample_rate * self._frame_duration_ms / 1000)

            def audio_callback(indata: np.ndarray, frames: int, time_info, status) -> None:
                if status:
                    logger.warning("Audio capture status: %s", status)
                samples = indata[:, 0] * self._gain
                try:
                    queue.sync_q.put_nowait(AudioSampleBuffer(samples.copy(), self._sample_rate))
                except (janus.SyncQueueFull, janus.SyncQueueShutDown):
                    pass

            self._stream = sd.InputStream(
                device=device,
                samplerate=self._sample_rate,
                channels=1,
                dtype="float32",
                blocksize=blocksize,
                callback=audio_callback,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as exc:
            self._queue.close()
            self._queue = None
            raise CaptureUnavailable(f"Microphone unavailable: {exc}") from exc
        logger.info(
            "Audio capture started (device=%s, rate=%d, frame=%dms)",
            device, self._sample_rate, self._frame_duration_ms,
        )

    async def stop(self) -> None:
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        if self._queue:
            self._queue.close()
            self._queue = None
        logger.info("Audio capture stopped")

    async def read_buffers(self) -> AsyncIterator[AudioSampleBuffer]:
        queue = self._queue
        if not queue:
            return
        while True:
            try:
                buffer = await asyncio.wait_for(queue.async_q.get(), timeout=1.0)
                yield buffer
            except asyncio.TimeoutError:
                if self._queue is not queue:
                    break
                continue
            except janus.AsyncQueueShutDown:
                break

    def _resolve_device(self) -> str | int | None:
        if self._device is None or self._device == "":
            return None
        if isinstance(self._device, int):
            return self._device
        try:
            return int(self._device)
        except ValueError:
            pass
        for i, dev in enumerate(sd.query_devices()):
            if self._device.lower() in dev["name"].lower() and dev["max_input_channels"] > 0:
                logger.info("Resolved device '%s' -> %d (%s)", self._device, i, dev["name"])
                return i
        os.environ["PIPEWIRE_NODE"] = self._device
        logger.info("Device '%s' not in PortAudio, set PIPEWIRE_NODE for PipeWire routing", self._device)
        return None
