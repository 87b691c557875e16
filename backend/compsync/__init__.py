"""
CompSync capture backend.

Recording & encoding pipeline for live dance-competition capture:
routine state machine, durable encode job queue, and the ffmpeg
process supervisor.
"""

__version__ = "0.4.0"
