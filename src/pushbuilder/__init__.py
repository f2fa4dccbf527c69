"""
pushbuilder - turns a git push into a container image and a controller release
"""

__version__ = "0.1.0"

from .core import Builder
from .errors import BuilderError

__all__ = ["Builder", "BuilderError"]
