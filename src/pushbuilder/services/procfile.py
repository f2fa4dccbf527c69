"""Process type resolution for staged applications."""

import os
import re
from typing import Dict, Tuple

import yaml

from pushbuilder.constants import PROCFILE_NAME, RELEASE_FILE_NAME
from pushbuilder.errors import BuilderError, ProcessTypeError
from pushbuilder.models import BuildContext, ProcessTypeMap, ProcessTypeSource

_PROCFILE_LINE = re.compile(r"^(?P<name>[A-Za-z0-9_-]+)\s*:\s*(?P<command>\S.*?)\s*$")


def parse_procfile(text: str) -> ProcessTypeMap:
    process_types: Dict[str, str] = {}
    for number, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _PROCFILE_LINE.match(stripped)
        if not match:
            raise ProcessTypeError(f"Malformed Procfile line {number}: {stripped}")
        process_types[match.group("name")] = match.group("command")
    return process_types


def dump_procfile(process_types: ProcessTypeMap) -> str:
    return "".join(f"{name}: {process_types[name]}\n" for name in sorted(process_types))


def parse_release_metadata(text: str) -> ProcessTypeMap:
    """Reads `default_process_types` from a buildpack's release YAML."""
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ProcessTypeError(f"Invalid release metadata: {exc}") from exc

    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ProcessTypeError("Release metadata must be a YAML mapping.")

    defaults = parsed.get("default_process_types") or {}
    if not isinstance(defaults, dict):
        raise ProcessTypeError("`default_process_types` must be a mapping.")
    return {str(name): str(command) for name, command in defaults.items()}


class ProcessTypeResolver:
    """Picks the authoritative process-type source and parses it."""

    def __init__(self, archive_service, logger):
        self.archive_service = archive_service
        self.logger = logger
        self._handlers = {
            ProcessTypeSource.PROCFILE: self._from_procfile,
            ProcessTypeSource.ARTIFACT_PROCFILE: self._from_artifact_procfile,
            ProcessTypeSource.RELEASE_METADATA: self._from_release_metadata,
            ProcessTypeSource.NONE: lambda _context: {},
        }

    def select_source(self, context: BuildContext) -> ProcessTypeSource:
        if os.path.isfile(os.path.join(context.staging_dir, PROCFILE_NAME)):
            return ProcessTypeSource.PROCFILE

        if not os.path.isfile(context.artifact_path):
            return ProcessTypeSource.NONE

        try:
            members = self.archive_service.list_members(context.artifact_path)
        except BuilderError as exc:
            self.logger.warning("Ignoring unreadable build artifact: %s", exc)
            return ProcessTypeSource.NONE

        if PROCFILE_NAME in members:
            return ProcessTypeSource.ARTIFACT_PROCFILE
        if RELEASE_FILE_NAME in members:
            return ProcessTypeSource.RELEASE_METADATA
        return ProcessTypeSource.NONE

    def resolve(self, context: BuildContext) -> Tuple[ProcessTypeSource, ProcessTypeMap]:
        source = self.select_source(context)
        try:
            process_types = self._handlers[source](context)
        except BuilderError as exc:
            self.logger.warning("Could not read process types from %s: %s", source.value, exc)
            process_types = {}
        self.logger.debug("Process types from %s: %s", source.value, process_types)
        return source, process_types

    def _from_procfile(self, context: BuildContext) -> ProcessTypeMap:
        path = os.path.join(context.staging_dir, PROCFILE_NAME)
        try:
            with open(path, "r", encoding="utf-8", errors="replace") as file_obj:
                return parse_procfile(file_obj.read())
        except OSError as exc:
            raise ProcessTypeError(f"Could not read {path}: {exc}") from exc

    def _from_artifact_procfile(self, context: BuildContext) -> ProcessTypeMap:
        return parse_procfile(self._read_artifact_member(context, PROCFILE_NAME))

    def _from_release_metadata(self, context: BuildContext) -> ProcessTypeMap:
        return parse_release_metadata(self._read_artifact_member(context, RELEASE_FILE_NAME))

    def _read_artifact_member(self, context: BuildContext, name: str) -> str:
        text = self.archive_service.read_member(context.artifact_path, name)
        if text is None:
            raise ProcessTypeError(f"{name} is not a regular file in {context.artifact_path}")
        return text
