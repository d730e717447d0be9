"""Encode action for the render pipeline.

Transcodes the video assets of a render job with an ffmpeg binary that is
resolved, downloaded and cached on demand.
"""

__version__ = "0.1.0"
