from typing import AsyncIterator, Protocol

from domain.resampler import AudioSampleBuffer


class AudioSourcePort(Protocol):
    @property
    def sample_rate(self) -> int: ...
    async def start(self) -> None: ...
    async def stop(self) -> None: ...
    def read_buffers(self) -> AsyncIterator[AudioSampleBuffer]: ...
