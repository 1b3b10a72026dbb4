"""Prepper-backed settings and the persisted processing configuration."""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import fields, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from dotenv import dotenv_values
from prepper import (
    ConfigNotFound,
    Field,
    IoError,
    SchemaError,
    SchemaModel,
    ValidationError,
    model_validator,
)
from prepper.config import ConfigInstance
from prepper.loaders import _parse_file, _path_to_source, discover_file_paths
from prepper.merge import merge_layer
from prepper.provenance import ProvenanceRecorder

from .errors import ConfigurationError
from .structures import (
    DEFAULT_SOFT_BREAK_CHARS,
    DetectionType,
    ProcessingConfig,
)

logger = logging.getLogger(__name__)

APP_NAME = "Linemend"
CONFIG_KEY = "line-break-cleaner-config"
DEFAULT_STORE_PATH = Path.home() / ".linemend" / "config.json"

DETECTION_SYNONYMS = {
    "autowidth": "auto-width",
    "edge": "edge-break",
    "edge-breaking": "edge-break",
    "edgebreak": "edge-break",
    "softbreak": "soft-break",
    "soft": "soft-break",
}


def format_soft_break(char: str) -> str:
    """Render a soft-break entry as comma-free ``U+XXXX`` notation."""

    return "".join(f"U+{ord(part):04X}" for part in char)


def parse_soft_break(token: str) -> str:
    """Parse ``U+2028``, ``\\u2028`` or a literal character sequence."""

    value = token.strip()
    code_points = re.fullmatch(r"(?:[Uu]\+[0-9A-Fa-f]{4,6})+", value)
    if code_points:
        return "".join(chr(int(code, 16)) for code in re.findall(r"[Uu]\+([0-9A-Fa-f]{4,6})", value))
    escapes = re.fullmatch(r"(?:\\u[0-9A-Fa-f]{4})+", value)
    if escapes:
        return "".join(chr(int(code, 16)) for code in re.findall(r"\\u([0-9A-Fa-f]{4})", value))
    if value == "\\v":
        return "\v"
    return token


def parse_soft_break_chars(value: str) -> Tuple[str, ...]:
    chars: list[str] = []
    for token in value.split(","):
        if not token.strip():
            continue
        char = parse_soft_break(token)
        if char and char not in chars:
            chars.append(char)
    return tuple(chars)


def normalise_detection(name: str) -> Optional[str]:
    normalized = name.strip().lower().replace("_", "-")
    normalized = DETECTION_SYNONYMS.get(normalized, normalized)
    valid = {kind.value for kind in DetectionType}
    return normalized if normalized in valid else None


def parse_detections(values: Iterable[str]) -> FrozenSet[DetectionType]:
    kinds = set()
    for value in values:
        normalized = normalise_detection(value)
        if normalized is not None:
            kinds.add(DetectionType(normalized))
    return frozenset(kinds)


def clamp_threshold(value: float) -> float:
    """Keep a width ratio inside (0, 1]; non-positive ratios are rejected."""

    if value <= 0:
        raise ValueError("line break threshold must be greater than 0")
    return min(value, 1.0)


class LinemendConfig(SchemaModel):
    """Schema describing all supported configuration options."""

    LINEMEND_MIN_CHARACTERS: int = Field(
        default=20,
        description="Blocks shorter than this are skipped.",
    )
    LINEMEND_LINE_BREAK_THRESHOLD: float = Field(
        default=0.4,
        description="Line width / container width ratio at which a break counts as incidental.",
    )
    LINEMEND_SOFT_BREAK_CHARS: str = Field(
        default=",".join(format_soft_break(char) for char in DEFAULT_SOFT_BREAK_CHARS),
        description="Comma-separated soft-break characters (U+XXXX notation allowed).",
    )
    LINEMEND_FONT_WIDTH_MULTIPLIER: float = Field(default=1.0)
    LINEMEND_DETECTIONS: str = Field(
        default="auto-width,edge-break,soft-break",
        description="Comma-separated detections to run.",
    )
    LINEMEND_STRICT_JOIN: bool = Field(default=False)
    LINEMEND_AVAILABLE_FONTS: str | None = Field(
        default=None,
        description="Comma-separated installed font families; unset disables the missing-font check.",
    )
    LINEMEND_CONFIG_STORE: str | None = Field(default=None)
    LINEMEND_DEBUG: bool = Field(default=False)

    @model_validator(mode="before")
    def _normalise_values(data: Any) -> Any:
        if isinstance(data, dict):
            raw_threshold = data.get("LINEMEND_LINE_BREAK_THRESHOLD")
            if raw_threshold is not None:
                try:
                    data["LINEMEND_LINE_BREAK_THRESHOLD"] = clamp_threshold(float(raw_threshold))
                except (TypeError, ValueError):
                    data["LINEMEND_LINE_BREAK_THRESHOLD"] = 0.4
            raw_detections = data.get("LINEMEND_DETECTIONS")
            if isinstance(raw_detections, str):
                names = [
                    normalise_detection(part) for part in raw_detections.split(",")
                ]
                data["LINEMEND_DETECTIONS"] = ",".join(
                    sorted({name for name in names if name})
                )
        return data


@lru_cache(maxsize=1)
def _load_config_instance(app_dir: Path | None = None) -> ConfigInstance:
    """Load configuration layers once and cache the immutable instance."""

    base_dir = app_dir or Path.cwd()
    try:
        provenance = ProvenanceRecorder()
        combined = _load_discovered_yaml(app_dir=base_dir, provenance=provenance)
        _merge_env_sources(
            combined,
            provenance=provenance,
            app_dir=base_dir,
            schema=LinemendConfig,
        )

        model = LinemendConfig.validate(combined, provenance=provenance)

        return ConfigInstance(
            model=model,
            provenance=provenance,
            env_prefix=None,
            schema_cls=LinemendConfig,
        )
    except ConfigNotFound as exc:
        raise ConfigurationError(f"Configuration could not be located: {exc}") from exc
    except IoError as exc:
        raise ConfigurationError(
            f"Configuration files could not be read: {exc}"
        ) from exc
    except SchemaError as exc:
        raise ConfigurationError(f"Configuration schema error: {exc}") from exc
    except ValidationError as exc:
        issues = _format_validation_errors(exc.to_dict())
        raise ConfigurationError(issues) from exc


def _load_discovered_yaml(
    *,
    app_dir: Path,
    provenance: ProvenanceRecorder,
) -> dict[str, Any]:
    """Load YAML configuration files using Prepper's discovery rules."""

    result: dict[str, Any] = {}
    discovered = discover_file_paths(
        APP_NAME,
        "yaml",
        app_dir=app_dir,
        extra_paths=None,
    )
    for path, label in discovered:
        parsed = _parse_file(path, "yaml")
        if not isinstance(parsed, Mapping):
            raise IoError(
                f"Invalid configuration file {path}: expected a mapping at the root."
            )
        source = _path_to_source(label, "yaml", path)
        merge_layer(result, parsed, provenance=provenance, source=source, layer="file")
    return result


def _merge_env_sources(
    target: dict[str, Any],
    *,
    provenance: ProvenanceRecorder,
    app_dir: Path,
    schema: type[SchemaModel],
) -> None:
    """Merge .env and process environment variables into the target mapping."""

    allowed = set(schema.__field_infos__.keys())

    def merge_values(values: Mapping[str, str], *, source_prefix: str) -> None:
        for key, value in sorted(values.items()):
            if value is None:
                continue
            if key not in allowed:
                continue
            merge_layer(
                target,
                {key: value},
                provenance=provenance,
                source=f"env:{source_prefix}:{key}",
                layer="env",
            )

    dotenv_path = app_dir / ".env"
    if dotenv_path.exists():
        dotenv_content = dotenv_values(dotenv_path)
        merge_values(
            {k: v for k, v in dotenv_content.items() if v is not None},
            source_prefix=".env",
        )

    merge_values(
        {k: v for k, v in os.environ.items() if isinstance(v, str)},
        source_prefix="process",
    )


def _format_validation_errors(entries: Sequence[dict[str, Any]]) -> str:
    details: list[str] = []
    for entry in entries:
        path = entry.get("path") or []
        if isinstance(path, (list, tuple)):
            location = ".".join(str(part) for part in path if part not in {None, ""})
        else:
            location = str(path)
        message = str(entry.get("message") or entry.get("msg") or "Invalid value")
        source = entry.get("source")
        origin = f" (source: {source})" if source else ""
        prefix = f"{location}: " if location else ""
        details.append(f"- {prefix}{message}{origin}")
    return "Configuration validation errors detected:\n" + "\n".join(details)


def get_config(app_dir: Path | None = None) -> ConfigInstance:
    """Return the immutable configuration instance."""

    return _load_config_instance(app_dir=app_dir)


def get_settings(app_dir: Path | None = None) -> LinemendConfig:
    """Return the validated schema model for typed access."""

    return get_config(app_dir=app_dir).model()


def _split_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def default_processing_config(settings: LinemendConfig) -> ProcessingConfig:
    """Build the processing defaults from environment-level settings."""

    return ProcessingConfig(
        min_characters=settings.LINEMEND_MIN_CHARACTERS,
        line_break_threshold=settings.LINEMEND_LINE_BREAK_THRESHOLD,
        soft_break_chars=parse_soft_break_chars(settings.LINEMEND_SOFT_BREAK_CHARS),
        font_width_multiplier=settings.LINEMEND_FONT_WIDTH_MULTIPLIER,
        enabled_detections=parse_detections(_split_list(settings.LINEMEND_DETECTIONS)),
        strict_join=settings.LINEMEND_STRICT_JOIN,
    )


def available_fonts(settings: LinemendConfig) -> list[str]:
    return _split_list(settings.LINEMEND_AVAILABLE_FONTS)


def store_path(settings: LinemendConfig) -> Path:
    if settings.LINEMEND_CONFIG_STORE:
        return Path(settings.LINEMEND_CONFIG_STORE).expanduser()
    return DEFAULT_STORE_PATH


class JsonConfigStore:
    """Flat key-value store keeping one JSON blob per key in a single file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def get(self, key: str) -> Any:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(data, ensure_ascii=True, indent=2, sort_keys=True),
            encoding="utf-8",
        )

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable configuration store %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}


def _coerce_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError("expected a non-negative integer")
    return value


def _coerce_positive(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError("expected a positive number")
    return float(value)


def _coerce_threshold(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("expected a number")
    return clamp_threshold(float(value))


def _coerce_strings(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise ValueError("expected a list of non-empty strings")
    return tuple(value)


def _coerce_patterns(value: Any) -> Tuple[str, ...]:
    patterns = _coerce_strings(value)
    for pattern in patterns:
        re.compile(pattern)
    return patterns


def _coerce_detections(value: Any) -> FrozenSet[DetectionType]:
    return parse_detections(_coerce_strings(value))


def _coerce_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError("expected a boolean")
    return value


_COERCERS: Dict[str, Callable[[Any], Any]] = {
    "min_characters": _coerce_int,
    "line_break_threshold": _coerce_threshold,
    "soft_break_chars": _coerce_strings,
    "font_width_multiplier": _coerce_positive,
    "enabled_detections": _coerce_detections,
    "exclude_patterns": _coerce_patterns,
    "strict_join": _coerce_bool,
    "refined_widths": _coerce_bool,
}


def config_from_blob(blob: Any, defaults: ProcessingConfig) -> ProcessingConfig:
    """Merge a stored blob over defaults, keeping the default for bad fields."""

    if not isinstance(blob, Mapping):
        return defaults
    overrides: Dict[str, Any] = {}
    for name, coerce in _COERCERS.items():
        if name not in blob:
            continue
        try:
            overrides[name] = coerce(blob[name])
        except (ValueError, re.error) as exc:
            logger.debug("Ignoring stored %s=%r: %s", name, blob[name], exc)
    return replace(defaults, **overrides)


def config_to_blob(config: ProcessingConfig) -> Dict[str, Any]:
    blob: Dict[str, Any] = {}
    for item in fields(config):
        value = getattr(config, item.name)
        if item.name == "enabled_detections":
            value = sorted(kind.value for kind in value)
        elif isinstance(value, tuple):
            value = list(value)
        blob[item.name] = value
    return blob


def load_processing_config(store: JsonConfigStore, defaults: ProcessingConfig) -> ProcessingConfig:
    return config_from_blob(store.get(CONFIG_KEY), defaults)


def save_processing_config(store: JsonConfigStore, config: ProcessingConfig) -> None:
    store.set(CONFIG_KEY, config_to_blob(config))
