"""Configuration loader for pushbuilder."""

import os
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from pushbuilder.errors import SettingsError
from pushbuilder.errors_catalog import actionable_error
from pushbuilder.models import BuilderSettings


class ConfigLoader:
    """Loads YAML settings and resolves them into `BuilderSettings`."""

    REQUIRED_KEYS = ("registry_host", "controller_host", "builder_key")
    CLI_ONLY_KEYS = {"verbose", "log_file"}
    SUPPORTED_KEYS = {field.name for field in fields(BuilderSettings)} | CLI_ONLY_KEYS

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise SettingsError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise SettingsError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise SettingsError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise SettingsError(f"Unknown configuration keys: {unknown_list}")

        return parsed

    def resolve(self, values: Dict[str, Any], overrides: Optional[Dict[str, Any]] = None) -> BuilderSettings:
        """Merges CLI overrides over file values and validates the result."""
        merged = dict(values)
        for key, value in (overrides or {}).items():
            if value is not None:
                merged[key] = value

        for key in self.CLI_ONLY_KEYS:
            merged.pop(key, None)

        missing = [key for key in self.REQUIRED_KEYS if not merged.get(key)]
        if missing:
            raise SettingsError(actionable_error("missing_settings", keys=", ".join(missing)))

        merged.setdefault("builder_root", os.getcwd())

        try:
            for key in ("registry_port", "controller_port", "build_group_id"):
                if key in merged:
                    merged[key] = int(merged[key])
            if "request_timeout" in merged:
                merged["request_timeout"] = float(merged["request_timeout"])
        except (TypeError, ValueError) as exc:
            raise SettingsError(f"Invalid numeric setting: {exc}") from exc

        for key in ("keep_build_dir", "serialize_builds"):
            if key in merged:
                merged[key] = bool(merged[key])

        merged["builder_root"] = os.path.abspath(str(merged["builder_root"]))

        protocol = str(merged.get("controller_protocol", "http")).lower()
        if protocol not in ("http", "https"):
            raise SettingsError(f"Unsupported controller protocol: {protocol}")
        merged["controller_protocol"] = protocol

        return BuilderSettings(**merged)
