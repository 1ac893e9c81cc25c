"""Load and access replay parameters from base_params.json"""
import json
from pathlib import Path
from typing import Any, Dict, Optional
import copy
import warnings

from replay_core.errors import ConfigError

DEFAULT_PARAMS_FILE = Path(__file__).parent / "base_params.json"


def _read_json(path) -> Dict[str, Any]:
    with open(path, 'r') as f:
        return json.load(f)


def _same_kind(base: Any, override: Any) -> bool:
    if base is None or override is None:
        return True
    # bool is an int subclass; never let it stand in for a number
    if isinstance(base, bool) or isinstance(override, bool):
        return isinstance(base, bool) and isinstance(override, bool)
    if isinstance(base, (int, float)) and isinstance(override, (int, float)):
        return True
    return isinstance(override, type(base))


def deep_merge(base: Any, override: Any, strict: bool = True, path: str = "") -> Any:
    """
    Merge override onto base and return a new structure.

    Dicts merge key by key; lists and scalars are replaced. In strict mode an
    override key missing from base raises KeyError and a value of another
    type raises TypeError (int and float are interchangeable, None matches
    anything). Non-strict mode warns instead.
    """
    if isinstance(base, dict) and isinstance(override, dict):
        merged = copy.deepcopy(base)
        for key, value in override.items():
            key_path = f"{path}.{key}" if path else key
            if key in base:
                merged[key] = deep_merge(base[key], value, strict=strict, path=key_path)
                continue
            if strict:
                raise KeyError(f"Override key '{key_path}' does not exist in base params.")
            warnings.warn(f"Override key '{key_path}' does not exist in base params. Adding it.")
            merged[key] = value
        return merged

    if not _same_kind(base, override):
        msg = f"Type mismatch at '{path}': expected {type(base).__name__}, got {type(override).__name__}"
        if strict:
            raise TypeError(msg)
        warnings.warn(msg)
    return copy.deepcopy(override)


def dotted_to_nested(dotted: Dict[str, Any]) -> Dict[str, Any]:
    """Expand {'execution.risk_fraction': 0.02} into {'execution': {'risk_fraction': 0.02}}"""
    nested: Dict[str, Any] = {}
    for dotted_key, value in dotted.items():
        node = nested
        parts = dotted_key.split('.')
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
    return nested


class ParamsLoader:
    """
    Single source of truth for replay parameters.

    The bundled base_params.json is the schema: overrides (a JSON file, then
    a dict) may only change keys it already defines.
    """

    def __init__(self, params_path: Optional[str] = None, base_path: Optional[Path] = None, overrides_path: Optional[Path] = None, overrides: Dict[str, Any] = None, strict: bool = True):
        source = params_path if params_path is not None else base_path
        self._params = _read_json(Path(source) if source is not None else DEFAULT_PARAMS_FILE)
        self._strict = strict

        if overrides_path is not None:
            self._params = deep_merge(self._params, _read_json(overrides_path), strict=strict)
        if overrides:
            self._params = deep_merge(self._params, overrides, strict=strict)

    def get(self, *keys: str, default: Any = None) -> Any:
        """
        Nested lookup: get('general', 'warmup_period') or get('general.warmup_period').
        Returns default when any level is missing.
        """
        if len(keys) == 1 and '.' in keys[0]:
            keys = tuple(keys[0].split('.'))
        node = self._params
        for key in keys:
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    def get_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self._params)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the effective params (written as params_used.json)"""
        return copy.deepcopy(self._params)

    def with_overrides(self, overrides: Dict[str, Any]) -> 'ParamsLoader':
        """Independent loader with overrides merged on top of these params"""
        clone = copy.copy(self)
        clone._params = deep_merge(self._params, overrides, strict=self._strict)
        return clone

    def validate(self) -> None:
        """Check replay parameters; raise ConfigError on the first bad value"""
        capital = self.get('general', 'initial_capital')
        if not _is_number(capital) or capital < 0:
            raise ConfigError(f"general.initial_capital must be a non-negative number, got {capital!r}")

        warmup = self.get('general', 'warmup_period')
        if not isinstance(warmup, int) or isinstance(warmup, bool) or warmup < 0:
            raise ConfigError(f"general.warmup_period must be a non-negative integer, got {warmup!r}")

        risk_fraction = self.get('execution', 'risk_fraction')
        if not _is_number(risk_fraction) or not 0 < risk_fraction <= 1:
            raise ConfigError(f"execution.risk_fraction must be in (0, 1], got {risk_fraction!r}")

        currency = self.get('general', 'currency')
        if not isinstance(currency, str) or not currency:
            raise ConfigError(f"general.currency must be a non-empty string, got {currency!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
