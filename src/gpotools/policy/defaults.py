"""Default migration settings and YAML configuration loading.

A configuration file holds the values an operator would otherwise pass on
every run:

    admx_store: \\\\contoso.com\\SYSVOL\\contoso.com\\Policies\\PolicyDefinitions
    language: en-US
    sysvol: \\\\contoso.com\\SYSVOL
    domain: contoso.com
"""

from pathlib import Path

import yaml

from ..exceptions import ConfigError
from .types import MigrationContext

# Local central store used by the Group Policy editor
DEFAULT_ADMX_STORE = Path(r"C:\Windows\PolicyDefinitions")
DEFAULT_LANGUAGE = "en-US"

CONFIG_KEYS = ("admx_store", "language", "sysvol", "domain")


def get_defaults() -> MigrationContext:
    """A fresh context with the default store and language."""
    return MigrationContext(admx_store=DEFAULT_ADMX_STORE, language=DEFAULT_LANGUAGE)


def context_from_dict(data: dict, **overrides) -> MigrationContext:
    """Build a MigrationContext from config values.

    Overrides with a value of None are ignored, so unset command-line
    flags do not mask file values.

    Raises:
        ConfigError: Unknown keys are present.
    """
    unknown = sorted(set(data) - set(CONFIG_KEYS))
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")

    values = dict(data)
    values.update({k: v for k, v in overrides.items() if v is not None})

    ctx = get_defaults()
    if values.get("admx_store"):
        ctx.admx_store = Path(values["admx_store"])
    if values.get("language"):
        ctx.language = str(values["language"])
    if values.get("sysvol"):
        ctx.sysvol_root = Path(values["sysvol"])
    if values.get("domain"):
        ctx.domain = str(values["domain"])
    return ctx


def load_context(path: Path | str | None = None, **overrides) -> MigrationContext:
    """Load a MigrationContext from a YAML file, applying overrides.

    Args:
        path: YAML config file, or None to start from the defaults.
        **overrides: admx_store, language, sysvol, domain.

    Raises:
        ConfigError: The file is unreadable, not valid YAML, not a
            mapping, or has unknown keys.
    """
    data = {}
    if path is not None:
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} is not a YAML mapping")
    return context_from_dict(data, **overrides)
