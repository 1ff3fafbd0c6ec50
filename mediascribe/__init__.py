"""MediaScribe: chunked transcription of podcasts, YouTube videos and local audio."""

__version__ = "1.0.0"
