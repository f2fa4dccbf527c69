"""Build mode detection for staged commits."""

import os

from pushbuilder.constants import DOCKERFILE_NAME
from pushbuilder.models import BuildMode


def detect_build_mode(staging_dir: str) -> BuildMode:
    if os.path.isfile(os.path.join(staging_dir, DOCKERFILE_NAME)):
        return BuildMode.DOCKERFILE
    return BuildMode.BUILDPACK
