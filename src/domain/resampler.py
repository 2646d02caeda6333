from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class AudioSampleBuffer:
    samples: np.ndarray
    sample_rate: int

    def __len__(self) -> int:
        return len(self.samples)


def output_length(input_length: int, input_rate: int, output_rate: int) -> int:
    return int(round(input_length * output_rate / input_rate))


def downsample_buffer(samples: np.ndarray, input_rate: int, output_rate: int) -> np.ndarray:
    samples = np.asarray(samples, dtype=np.float32)
    if output_rate == input_rate or len(samples) == 0:
        return samples

    length = output_length(len(samples), input_rate, output_rate)
    if output_rate > input_rate:
        positions = np.linspace(0, len(samples) - 1, num=length) if length else np.array([])
        return np.interp(positions, np.arange(len(samples)), samples).astype(np.float32)

    # Block average: each output sample is the mean of the input span it covers.
    ratio = input_rate / output_rate
    bounds = np.round(np.arange(length + 1) * ratio).astype(np.int64)
    bounds = np.minimum(bounds, len(samples))
    result = np.zeros(length, dtype=np.float32)
    for i in range(length):
        start, end = bounds[i], bounds[i + 1]
        if end > start:
            result[i] = samples[start:end].mean()
        elif start < len(samples):
            result[i] = samples[start]
    return result


def pcm_encode(samples: np.ndarray) -> bytes:
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 0x8000, clipped * 0x7FFF)
    return scaled.astype("<i2").tobytes()


def encode_audio(buffer: AudioSampleBuffer | None, target_rate: int) -> bytes | None:
    if buffer is None or buffer.samples is None or len(buffer.samples) == 0:
        return None
    downsampled = downsample_buffer(buffer.samples, buffer.sample_rate, target_rate)
    if len(downsampled) == 0:
        return None
    return pcm_encode(downsampled)
