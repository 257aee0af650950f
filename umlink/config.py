"""
Configuration.

Annotation names come from a YAML file (`umlink.yml` in the working
directory, or `--config PATH`) and from command line flags; flags win.

    skip: com.example.uml.Skip
    aggregate: com.example.uml.UmlAggregate
    compose: com.example.uml.UmlCompose
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .model import RelationKind

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path("umlink.yml")

# config key -> relationship kind, in matching priority order
RELATION_KEYS = {
    "aggregate": RelationKind.AGGREGATION,
    "compose": RelationKind.COMPOSITION,
    "link": RelationKind.LINK,
    "navigate": RelationKind.ASSOCIATION,
}


@dataclass
class LinkConfig:
    """Fully qualified annotation names driving skipping and relationship inference."""
    skip: Optional[str] = None
    aggregate: Optional[str] = None
    compose: Optional[str] = None
    link: Optional[str] = None
    navigate: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LinkConfig":
        known = {f.name for f in fields(cls)}
        for key in data:
            if key not in known:
                logger.warning("Unknown configuration key %r ignored", key)
        values = {}
        for key in known:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                logger.warning("Configuration key %r must be a string, got %r", key, value)
                value = None
            values[key] = value or None
        return cls(**values)

    def merge(self, overrides: Dict[str, Optional[str]]) -> "LinkConfig":
        """New config where every non-empty override replaces the file value."""
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        for key, value in overrides.items():
            if key in values and value:
                values[key] = value
        return LinkConfig(**values)

    def relationship_annotations(self) -> Dict[str, RelationKind]:
        """Configured relationship annotations, first match wins."""
        annotations: Dict[str, RelationKind] = {}
        for key, kind in RELATION_KEYS.items():
            name = getattr(self, key)
            if name and name not in annotations:
                annotations[name] = kind
        return annotations


def load_config(config_path: Optional[Path] = None) -> LinkConfig:
    """
    Load configuration from YAML.

    Args:
        config_path: Explicit file. When None, `umlink.yml` in the current
            directory is used if it exists.

    A missing default file gives the empty config; an explicit file that
    cannot be read or parsed is reported and also gives the empty config.
    """
    if config_path is None:
        if not DEFAULT_CONFIG_FILE.exists():
            return LinkConfig()
        config_path = DEFAULT_CONFIG_FILE

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load config from %s: %s", config_path, e)
        return LinkConfig()

    if data is None:
        data = {}
    if not isinstance(data, dict):
        logger.warning("Config file %s must contain a mapping", config_path)
        return LinkConfig()

    logger.info("Loaded configuration from %s", config_path)
    return LinkConfig.from_dict(data)
