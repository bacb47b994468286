"""
Tribora content-processing pipeline.

Uploaded and recorded assets become Content records that background workers
drive through extract → transcribe → document → embedding stages, with an
independent frame-indexing chain for video.
"""

__version__ = "0.1.0"
