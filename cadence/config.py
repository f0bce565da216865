"""Configuration for Cadence."""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from cadence.models import BudgetLimits


CONFIG_ENV_VAR = "CADENCE_CONFIG_JSON"
RC_FILENAME = ".cadencerc.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "upgrade-defaults": False,
    "model-selection": {
        "enabled": True,
        "budgets": {
            "daily": 5.00,
            "monthly": 50.00,
            "perAgent": 10.00,
        },
        "models": {},
    },
}

# Flat override keys and the nested budget key each one replaces.
_LIMIT_KEYS = {
    "dailyLimit": "daily",
    "monthlyLimit": "monthly",
    "perAgentLimit": "perAgent",
}


class ConfigError(ValueError):
    """Raised when a configuration mapping cannot be used."""


@dataclass
class SelectorConfig:
    """Parsed, read-only view of the configuration mapping."""
    upgrade_defaults: bool = False
    enabled: bool = True
    disabled_models: frozenset[str] = field(default_factory=frozenset)
    budgets: BudgetLimits = field(default_factory=BudgetLimits)

    def is_model_enabled(self, model_id: str) -> bool:
        return model_id not in self.disabled_models

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]]) -> "SelectorConfig":
        """
        Parse a JSON-shaped configuration mapping.

        Accepts both the flat budget keys (dailyLimit, monthlyLimit,
        perAgentLimit) and the nested model-selection.budgets form; the
        flat keys win when both are present.

        Raises:
            ConfigError: If the mapping is not a dict or a limit is not a
                non-negative number.
        """
        if mapping is None:
            mapping = {}
        if not isinstance(mapping, Mapping):
            raise ConfigError("configuration must be a JSON object")

        selection = mapping.get("model-selection") or {}
        if not isinstance(selection, Mapping):
            raise ConfigError("'model-selection' must be an object")

        models = selection.get("models") or {}
        if not isinstance(models, Mapping):
            raise ConfigError("'model-selection.models' must be an object")
        disabled = frozenset(
            model_id
            for model_id, settings in models.items()
            if isinstance(settings, Mapping) and settings.get("enabled") is False
        )

        limits = dict(DEFAULT_CONFIG["model-selection"]["budgets"])
        nested = selection.get("budgets") or {}
        if isinstance(nested, Mapping):
            for key in limits:
                if key in nested:
                    limits[key] = nested[key]
        for flat_key, nested_key in _LIMIT_KEYS.items():
            if flat_key in mapping:
                limits[nested_key] = mapping[flat_key]

        for key, value in limits.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"budget '{key}' must be a number, got {value!r}")
            if value < 0:
                raise ConfigError(f"budget '{key}' cannot be negative")

        return cls(
            upgrade_defaults=bool(mapping.get("upgrade-defaults", False)),
            enabled=selection.get("enabled", True) is not False,
            disabled_models=disabled,
            budgets=BudgetLimits(
                daily_usd=float(limits["daily"]),
                monthly_usd=float(limits["monthly"]),
                per_agent_usd=float(limits["perAgent"]),
            ),
        )


def _parse_json_env(var_name: str) -> Dict[str, Any] | None:
    value = os.getenv(var_name)
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: str | Path | None = None) -> Dict[str, Any]:
    """
    Load the configuration mapping.

    Sources, later ones winning: built-in defaults, the rc file
    (``path`` or ``./.cadencerc.json`` if present), then the
    CADENCE_CONFIG_JSON environment variable.

    Raises:
        ConfigError: If the rc file exists but is not a JSON object.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    rc_path = Path(path) if path is not None else Path.cwd() / RC_FILENAME
    if rc_path.exists():
        try:
            with open(rc_path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{rc_path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"{rc_path} must contain a JSON object")
        config = _deep_merge(config, data)

    parsed = _parse_json_env(CONFIG_ENV_VAR)
    if parsed:
        config = _deep_merge(config, parsed)

    return config


def validate_config(mapping: Optional[Mapping[str, Any]], known_models=()) -> Dict[str, Any]:
    """
    Check a configuration mapping without raising.

    Returns:
        {"valid": bool, "errors": [str, ...], "warnings": [str, ...]}
    """
    errors = []
    warnings = []

    try:
        parsed = SelectorConfig.from_mapping(mapping)
    except ConfigError as exc:
        return {"valid": False, "errors": [str(exc)], "warnings": []}

    if parsed.budgets.daily_usd > parsed.budgets.monthly_usd:
        errors.append("Daily budget cannot exceed monthly budget")

    if parsed.budgets.per_agent_usd > parsed.budgets.monthly_usd:
        warnings.append("Per-agent budget exceeds monthly budget and can never be reached")

    known = set(known_models)
    if known and known <= parsed.disabled_models:
        warnings.append("All registered models are disabled; only the built-in fallback remains")

    for model_id in sorted(parsed.disabled_models):
        if known and model_id not in known:
            warnings.append(f"Disabled model '{model_id}' is not in the registry")

    return {"valid": not errors, "errors": errors, "warnings": warnings}
