from __future__ import annotations

import copy
import dataclasses
import logging
import os
import re
import typing as t
from dataclasses import MISSING, asdict, fields, is_dataclass
from typing import Any, Dict, Literal, Type, TypeVar

import yaml

T = TypeVar("T")

"""
Config utilities for HierImpute.

Nested configs stay dataclasses at all times; YAML files and dot-key overrides are merged into them strictly (unknown keys are errors).

Public API:
- load_yaml_to_dataclass
- apply_dot_overrides
- flatten_dict
- dataclass_to_yaml
- save_dataclass_yaml
"""

_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]*))?\}")


# ---------------- Env var interpolation ----------------
def _interpolate_env(s: str) -> str:
    """Interpolate env vars in a string.

    Syntax: ${VAR} or ${VAR:default}. Unset variables without a default become empty strings.

    Args:
        s (str): Input string possibly containing env var patterns.

    Returns:
        str: The string with env vars interpolated.
    """
    return _ENV_PATTERN.sub(
        lambda m: os.getenv(m.group(1), m.group(2) if m.group(2) is not None else ""),
        s,
    )


def _walk_env(obj: Any) -> Any:
    """Recursively interpolate env vars in strings within a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_env(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_env(v) for v in obj]
    return obj


# ---------------- YAML helpers ----------------
def dataclass_to_yaml(dc: Any) -> str:
    """Convert a dataclass instance to a YAML string.

    Args:
        dc (Any): A dataclass instance.

    Returns:
        str: The YAML representation of the dataclass, keys in field order.

    Raises:
        TypeError: If `dc` is not a dataclass instance.
    """
    if not is_dataclass(dc) or isinstance(dc, type):
        raise TypeError("dataclass_to_yaml expects a dataclass instance.")
    return yaml.safe_dump(asdict(dc), sort_keys=False)


def save_dataclass_yaml(dc: Any, path: str) -> None:
    """Write a dataclass instance to `path` as YAML.

    Raises:
        TypeError: If `dc` is not a dataclass instance.
    """
    text = dataclass_to_yaml(dc)
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)


def flatten_dict(d: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten a nested mapping into dot-keys, e.g. {'io': {'seed': 1}} -> {'io.seed': 1}."""
    out: Dict[str, Any] = {}
    for k, v in d.items():
        key = f"{prefix}.{k}" if prefix else str(k)
        if isinstance(v, dict):
            out.update(flatten_dict(v, key))
        else:
            out[key] = v
    return out


def load_yaml_to_dataclass(
    path: str,
    dc_type: Type[T],
    *,
    base: T | None = None,
    overlays: Dict[str, Any] | None = None,
    yaml_preset_behavior: Literal["ignore", "error"] = "ignore",
) -> T:
    """Load a YAML file and merge it into a dataclass instance.

    Precedence (lowest to highest): `base` (or `dc_type()` defaults) < YAML file < `overlays`.

    Notes:
        - `preset` is CLI-only. A `preset` key in the YAML is dropped with a warning, or rejected when `yaml_preset_behavior="error"`.
        - String values may reference environment variables as ``${VAR}`` or ``${VAR:default}``.

    Args:
        path (str): Path to the YAML file.
        dc_type (Type[T]): Dataclass type to construct if `base` is not provided.
        base (T | None): Starting instance, typically built from a preset. Deep-copied, never modified.
        overlays (Dict[str, Any] | None): Nested mapping applied after the YAML.
        yaml_preset_behavior (Literal["ignore", "error"]): What to do with a `preset` key in the YAML.

    Returns:
        T: The merged dataclass instance.

    Raises:
        TypeError: If `base` is not a dataclass, the YAML root isn't a mapping, or `overlays` isn't a mapping.
        ValueError: If `yaml_preset_behavior="error"` and the YAML contains `preset`.
        KeyError: If the YAML or overlays contain unknown keys.
    """
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise TypeError(f"{path} did not parse as a mapping.")
    raw = _walk_env(raw)

    if "preset" in raw:
        preset_in_yaml = raw.pop("preset")
        if yaml_preset_behavior == "error":
            raise ValueError(
                f"YAML contains 'preset: {preset_in_yaml}'. "
                "The preset must be selected via the command line only."
            )
        logging.warning(
            "Ignoring 'preset' in YAML (%r). Preset selection is CLI-only.",
            preset_in_yaml,
        )

    if base is not None:
        if not is_dataclass(base):
            raise TypeError("`base` must be a dataclass instance.")
        cfg = copy.deepcopy(base)
    else:
        cfg = dc_type()

    cfg = apply_dot_overrides(cfg, flatten_dict(raw))

    if overlays:
        if not isinstance(overlays, dict):
            raise TypeError("`overlays` must be a nested dict.")
        cfg = apply_dot_overrides(cfg, flatten_dict(overlays))

    return cfg


# ---------------- Type introspection ----------------
def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _unwrap_optional(tp: Any) -> Any:
    """If Optional[T] or T | None, return T; else tp."""
    args = [a for a in t.get_args(tp) if a is not type(None)]
    if type(None) in t.get_args(tp) and len(args) == 1:
        return args[0]
    return tp


def _expected_field_type(dc_type: type, name: str) -> Any:
    """Fetch the resolved annotation of field `name` on `dc_type`.

    Raises:
        KeyError: If the field is unknown.
    """
    for f in fields(dc_type):
        if f.name == name:
            try:
                return t.get_type_hints(dc_type).get(name, f.type)
            except (NameError, TypeError):
                return f.type
    raise KeyError(f"Unknown config key: '{name}' on {dc_type.__name__}")


def _coerce_value(value: Any, tp: Any, where: str, *, current: Any = MISSING) -> Any:
    """Lightweight coercion for primitives and Literals.

    Strings coming from the CLI or environment ("0.3", "true", "2") are converted to the annotated primitive type. Values that cannot be coerced are returned unchanged.

    Raises:
        ValueError: If the value is not one of a Literal's allowed values.
    """
    if t.get_origin(tp) is t.Literal:
        allowed = t.get_args(tp)
        if value not in allowed:
            raise ValueError(
                f"Invalid value for {where}. Expected one of {list(allowed)}, got {value!r}."
            )
        return value

    if tp is bool:
        if isinstance(value, str):
            v = value.strip().lower()
            if v in {"true", "1", "yes", "on"}:
                return True
            if v in {"false", "0", "no", "off"}:
                return False
        return bool(value)

    if tp in (int, float, str):
        if value is None:
            return value
        if isinstance(value, str) and value.strip() == "" and current is not MISSING:
            return current
        try:
            return tp(value.strip() if isinstance(value, str) else value)
        except (TypeError, ValueError):
            return value

    # `int | None` style unions: try the first non-None member
    members = [a for a in t.get_args(tp) if a is not type(None)]
    if members and value is not None and isinstance(value, str):
        for member in members:
            if member in (int, float):
                try:
                    return member(value.strip())
                except ValueError:
                    continue
        if value.strip().lower() in {"none", "null"}:
            return None

    return value


def apply_dot_overrides(dc: Any, overrides: Dict[str, Any] | None) -> Any:
    """Apply overrides like {'io.prefix': 'run1', 'algo.min_abs_cor': 0.2} to a config dataclass.

    A deep copy is updated and returned; the input is left unchanged.

    Args:
        dc (Any): A dataclass instance.
        overrides (Dict[str, Any] | None): Mapping of dot-key paths to values.

    Returns:
        Any: The updated copy.

    Raises:
        TypeError: If `dc` is not a dataclass instance.
        KeyError: If any override path is invalid.
        ValueError: If a Literal-typed field receives a value outside its choices.
    """
    if not overrides:
        return dc
    if not is_dataclass(dc) or isinstance(dc, type):
        raise TypeError("apply_dot_overrides expects a dataclass instance.")

    updated = copy.deepcopy(dc)
    for dotkey, value in overrides.items():
        parts = dotkey.split(".")
        node = updated
        for idx, seg in enumerate(parts[:-1]):
            exp_core = _unwrap_optional(_expected_field_type(type(node), seg))
            child = getattr(node, seg)
            if child is None and _is_dataclass_type(exp_core):
                child = exp_core()
                setattr(node, seg, child)
            if not is_dataclass(child):
                parent_path = ".".join(parts[: idx + 1])
                raise KeyError(
                    f"Target '{parent_path}' is not a config section; cannot set '{dotkey}'."
                )
            node = child

        leaf = parts[-1]
        exp_type = _expected_field_type(type(node), leaf)
        current = getattr(node, leaf, MISSING)
        if is_dataclass(current) and isinstance(value, dict):
            merged = apply_dot_overrides(current, flatten_dict(value))
            setattr(node, leaf, merged)
            continue
        setattr(node, leaf, _coerce_value(value, exp_type, dotkey, current=current))

    return updated
