from __future__ import annotations

import logging
from pathlib import Path

import yaml

from motion_synth.models.config import AppConfig, ConfigUpdate

logger = logging.getLogger(__name__)


def _to_yaml(cfg: AppConfig) -> str:
    return yaml.safe_dump(cfg.model_dump(), sort_keys=False)


class ConfigStore:
    """YAML file holding the ``AppConfig``; a default file is written on first use."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.config = self._load_or_create()

    def _load_or_create(self) -> AppConfig:
        if not self.path.exists():
            cfg = AppConfig()
            self.save(cfg)
            logger.info("Wrote default configuration to %s", self.path)
            return cfg
        payload = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        logger.debug("Loaded configuration from %s", self.path)
        return AppConfig.model_validate(payload)

    def save(self, cfg: AppConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(_to_yaml(cfg), encoding="utf-8")
        self.config = cfg

    def update(self, update: ConfigUpdate) -> AppConfig:
        # Each given section replaces the stored one whole, explicit nulls included.
        sections = {name: section.model_dump() for name, section in update if section is not None}
        merged = AppConfig.model_validate({**self.config.model_dump(), **sections})
        self.save(merged)
        logger.info("Updated configuration sections: %s", ", ".join(sections) or "none")
        return merged

    def dump(self) -> str:
        return _to_yaml(self.config)
