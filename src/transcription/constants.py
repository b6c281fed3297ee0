"""Core constants for the transcription service.

whisper-server expects 16kHz mono PCM16 WAV input, which is what the
encoder is asked to produce.
"""

# Audio format requirements
SAMPLE_RATE: int = 16000  # Hz - whisper models are trained on 16kHz audio
CHANNELS: int = 1
BYTES_PER_SAMPLE: int = 2  # 16-bit PCM

# File naming
TRANSCRIPT_SUFFIX: str = ".txt"
TEMP_WAV_SUFFIX: str = ".tmp.wav"

# whisper-server process
SERVER_HOST: str = "127.0.0.1"
DEFAULT_SERVER_PORT: int = 8178
SERVER_EXECUTABLES: tuple[str, ...] = ("whisper-server", "server")
STARTUP_TIMEOUT_S: float = 120.0
STARTUP_POLL_INTERVAL_S: float = 0.5
PROBE_TIMEOUT_S: float = 2.0
STOP_GRACE_S: float = 5.0

# Encoder
ENCODER_EXECUTABLE: str = "ffmpeg"

# Jobs
JOB_TIMEOUT_S: float = 30 * 60
INFERENCE_TIMEOUT_S: float = 10 * 60
DEFAULT_LANGUAGE: str = "zh"
AUTO_LANGUAGE: str = "auto"
