"""
Audio payload helpers shared by provider adapters (in-memory only).
"""

import io
import wave

PCM_SAMPLE_WIDTH = 2  # 16-bit signed little-endian


def pcm_to_wav(pcm: bytes, sample_rate: int, channels: int = 1, sample_width: int = PCM_SAMPLE_WIDTH) -> bytes:
    """Wrap raw linear PCM in a RIFF/WAVE container."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(channels)
        wav_file.setsampwidth(sample_width)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


def looks_like_wav(data: bytes) -> bool:
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE"
