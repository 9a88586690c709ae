"""sleeptimer: a single-slot sleep timer that pauses playback when it runs out."""

__version__ = "0.1.0"
