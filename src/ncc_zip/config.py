from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import ConfigNotFound, ConfigParseError


LOGGER = logging.getLogger("ncc_zip.config")

CONFIG_FILENAME = "ncc.config.json"
MANIFEST_FILENAME = "package.json"
MANIFEST_KEY = "ncc"

# camelCase keys understood by ncc, mapped onto BuildConfig fields.
_FIELD_KEYS = {
    "externals": "externals",
    "minify": "minify",
    "sourceMap": "source_map",
    "sourceMapRegister": "source_map_register",
    "quiet": "quiet",
    "license": "license",
    "target": "target",
    "transpileOnly": "transpile_only",
    "cache": "cache",
    "assetBuilds": "asset_builds",
    "v8cache": "v8_cache",
}


@dataclass(frozen=True)
class BuildConfig:
    """Effective bundler options for one invocation."""

    externals: Tuple[str, ...] = ()
    minify: bool = False
    source_map: bool = False
    source_map_register: bool = True
    quiet: bool = False
    license: Optional[str] = None
    target: Optional[str] = None
    transpile_only: bool = False
    cache: bool = True
    asset_builds: bool = False
    v8_cache: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "BuildConfig":
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for key, value in payload.items():
            name = _FIELD_KEYS.get(key)
            if name is None:
                extra[key] = value
            elif name == "externals":
                values[name] = _coerce_externals(value)
            else:
                values[name] = value
        return cls(extra=extra, **values)

    def with_overrides(self, **overrides: Any) -> "BuildConfig":
        """Return a copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        if "externals" in changes:
            changes["externals"] = _coerce_externals(changes["externals"])
        return replace(self, **changes) if changes else self

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self.extra)
        for key, name in _FIELD_KEYS.items():
            value = getattr(self, name)
            payload[key] = list(value) if name == "externals" else value
        return payload

    def to_cli_args(self) -> List[str]:
        """Render the options as flags for the ``ncc build`` command line."""
        args: List[str] = []
        for external in self.externals:
            args.extend(["-e", external])
        if self.minify:
            args.append("-m")
        if self.source_map:
            args.append("-s")
            if not self.source_map_register:
                args.append("--no-source-map-register")
        if not self.cache:
            args.append("-C")
        if self.transpile_only:
            args.append("-t")
        if self.asset_builds:
            args.append("-a")
        if self.v8_cache:
            args.append("--v8-cache")
        if self.target:
            args.extend(["--target", self.target])
        if self.license:
            args.extend(["--license", self.license])
        return args


def resolve_config(cwd: Path, config_path: Optional[Union[str, Path]] = None) -> BuildConfig:
    """
    Resolve the build configuration in the following order:

    1. the explicit ``config_path``, if given (must exist);
    2. ``ncc.config.json`` in *cwd*;
    3. the ``"ncc"`` key of ``package.json`` in *cwd*;
    4. the empty default.

    Only the first source found is used.
    """
    cwd = Path(cwd)

    if config_path:
        path = cwd / Path(config_path).expanduser()
        if not path.exists():
            raise ConfigNotFound(f"Could not find config at {config_path}")
        LOGGER.debug("Using explicit config %s", path)
        return BuildConfig.from_mapping(_load_object(path, str(config_path)))

    path = cwd / CONFIG_FILENAME
    if path.exists():
        LOGGER.debug("Using %s", path)
        return BuildConfig.from_mapping(_load_object(path, CONFIG_FILENAME))

    path = cwd / MANIFEST_FILENAME
    if path.exists():
        manifest = _load_object(path, MANIFEST_FILENAME)
        block = manifest.get(MANIFEST_KEY)
        if block is not None:
            if not isinstance(block, dict):
                raise ConfigParseError(f'Error parsing config at {MANIFEST_FILENAME}: "{MANIFEST_KEY}" must be an object')
            LOGGER.debug("Using %r block of %s", MANIFEST_KEY, path)
            return BuildConfig.from_mapping(block)

    return BuildConfig()


def _load_object(path: Path, label: str) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError) as exc:
        raise ConfigParseError(f"Error parsing config at {label}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigParseError(f"Error parsing config at {label}: expected a JSON object")
    return data


def _coerce_externals(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, dict):
        return tuple(value)
    return tuple(str(item) for item in value or ())
