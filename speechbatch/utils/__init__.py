"""
speechbatch utilities: validation, filename sanitising, audio containers.
"""

from .audio import pcm_to_wav
from .validators import ConfigurationValidator, DataValidator, ValidationReport, sanitize_filename

__all__ = [
    "ConfigurationValidator",
    "DataValidator",
    "ValidationReport",
    "sanitize_filename",
    "pcm_to_wav",
]
