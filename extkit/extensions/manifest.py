"""Specification Normalizer: raw extension declarations -> Extension records.

A raw spec is a bare source string, a mapping with ``source``, or a sequence
whose first element is the source followed by an options mapping. The shape is
resolved here once; nothing downstream re-interprets it.
"""

import logging
import re
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from extkit.extensions.bindings import parse_key_binding
from extkit.extensions.contract import Extension, KeyBinding, Triggers
from extkit.extensions.errors import InvalidSpec

logger = logging.getLogger(__name__)

_HOOK_REF = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_][\w.]*$")
_NAME_SUFFIX = ".git"


def _is_hook(value: Any) -> bool:
    return callable(value) or (isinstance(value, str) and bool(_HOOK_REF.match(value)))


class ExtensionSpec(BaseModel):
    """Validated options of one raw extension spec. Short and long keys are both accepted."""

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    source: str
    name: str | None = None
    dependencies: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("dependencies", "depends")
    )
    priority: int | None = None
    events: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("events", "event")
    )
    commands: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("commands", "cmd")
    )
    file_categories: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("file_categories", "ft")
    )
    lazy_delay_ms: int | None = Field(
        default=None, ge=0, validation_alias=AliasChoices("lazy_delay_ms", "delay")
    )
    lazy: bool | None = None
    enabled: bool = True
    init_hook: Any = Field(default=None, validation_alias=AliasChoices("init_hook", "init"))
    configure_hook: Any = Field(
        default=None, validation_alias=AliasChoices("configure_hook", "configure")
    )
    post_hook: Any = Field(default=None, validation_alias=AliasChoices("post_hook", "post"))
    opts: dict[str, Any] = Field(default_factory=dict)
    config: Any = None
    module: str | None = None
    key_bindings: list[Any] = Field(
        default_factory=list, validation_alias=AliasChoices("key_bindings", "keys")
    )

    @field_validator("dependencies", "events", "commands", "file_categories", mode="before")
    @classmethod
    def _single_string_to_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("enabled", mode="before")
    @classmethod
    def _enabled_unless_false(cls, value: Any) -> Any:
        return True if value is None else value

    @field_validator("key_bindings", mode="before")
    @classmethod
    def _keys_to_list(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (str, dict)):
            return [value]
        return value

    @field_validator("init_hook", "configure_hook", "post_hook")
    @classmethod
    def _check_hook(cls, value: Any) -> Any:
        if value is not None and not _is_hook(value):
            raise ValueError("hook must be a callable or a 'module:attribute' string")
        return value

    @field_validator("config")
    @classmethod
    def _check_config(cls, value: Any) -> Any:
        if value is None or isinstance(value, (bool, dict)) or _is_hook(value):
            return value
        raise ValueError("config must be a mapping or a hook")


def derive_name(source: str) -> str:
    """Last path segment of source without a trailing repository suffix."""
    segment = source.rstrip("/").rsplit("/", 1)[-1]
    if segment.endswith(_NAME_SUFFIX) and len(segment) > len(_NAME_SUFFIX):
        segment = segment[: -len(_NAME_SUFFIX)]
    return segment


def _as_mapping(raw: Any) -> dict[str, Any]:
    if isinstance(raw, str):
        return {"source": raw}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, (list, tuple)):
        if not raw or not isinstance(raw[0], str):
            raise InvalidSpec("positional spec must start with a source string", raw)
        data: dict[str, Any] = {}
        for item in raw[1:]:
            if not isinstance(item, dict):
                raise InvalidSpec("positional spec options must be mappings", raw)
            data.update(item)
        data["source"] = raw[0]
        return data
    raise InvalidSpec(f"unsupported spec type {type(raw).__name__}", raw)


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def _parse_bindings(name: str, raw_bindings: list[Any]) -> tuple[KeyBinding, ...]:
    bindings: list[KeyBinding] = []
    for raw in raw_bindings:
        try:
            bindings.append(parse_key_binding(raw))
        except ValueError as e:
            logger.warning("Invalid key binding for %s: %s", name, e)
    return tuple(bindings)


def normalize(raw: Any) -> Extension:
    """Build an Extension from a raw spec with defaults applied. Raises InvalidSpec."""
    data = _as_mapping(raw)
    source = data.get("source")
    if not isinstance(source, str) or not source.strip():
        raise InvalidSpec("source is required", raw)
    try:
        spec = ExtensionSpec.model_validate(data)
    except ValidationError as e:
        raise InvalidSpec(f"invalid spec for {source}: {e}", raw) from e
    source = spec.source.strip()
    if "/" not in source:
        raise InvalidSpec(f"invalid source {source!r}: expected a path with '/'", raw)

    name = spec.name or derive_name(source)
    if not name:
        raise InvalidSpec(f"cannot derive a name from source {source!r}", raw)

    configure_hook = spec.configure_hook
    config: dict[str, Any] = {}
    if isinstance(spec.config, dict):
        config = spec.config
    elif spec.config is not None and not isinstance(spec.config, bool):
        configure_hook = configure_hook or spec.config

    triggers = Triggers(
        events=_unique(spec.events),
        commands=_unique(spec.commands),
        file_categories=_unique(spec.file_categories),
        lazy_delay_ms=spec.lazy_delay_ms,
    )
    lazy = spec.lazy if spec.lazy is not None else triggers.any()

    return Extension(
        name=name,
        source=source,
        dependencies=_unique(spec.dependencies),
        priority=spec.priority,
        triggers=triggers,
        lazy=lazy,
        enabled=spec.enabled,
        init_hook=spec.init_hook,
        configure_hook=configure_hook,
        post_hook=spec.post_hook,
        opts=spec.opts,
        config=config,
        module=spec.module,
        key_bindings=_parse_bindings(name, spec.key_bindings),
    )


def normalize_batch(raws: Iterable[Any]) -> tuple[list[Extension], list[InvalidSpec]]:
    """Normalize every raw spec. Invalid specs are reported and dropped; the rest continue."""
    extensions: list[Extension] = []
    errors: list[InvalidSpec] = []
    for raw in raws:
        try:
            extensions.append(normalize(raw))
        except InvalidSpec as e:
            logger.warning("Dropping invalid extension spec: %s", e)
            errors.append(e)
    return extensions, errors


def load_specs(path: Path) -> list[Any]:
    """Read raw specs from a YAML file: a list, or a mapping with an 'extensions' list."""
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return []
    if isinstance(data, dict):
        data = data.get("extensions") or []
    if not isinstance(data, list):
        raise ValueError(f"Spec file must hold a list of extensions: {path}")
    return data
