"""Stand-ins for whisper-server and ffmpeg used by tests and local development."""
