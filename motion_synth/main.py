"""Command-line entry point.

Examples:
    # Play with the default (theremin) mapping
    motion-synth run

    # Pick another mapping strategy for this run
    motion-synth run --strategy chord_field

    # Inspect the effective configuration
    motion-synth show-config --config configs/default.yaml
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import argh

from motion_synth.core.mapping import mapping_strategies
from motion_synth.services.config_store import ConfigStore
from motion_synth.services.runtime import build_runtime

DEFAULT_CONFIG_PATH = "configs/default.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    # basicConfig installs the handler once; the level can be changed afterwards.
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))


def run(config: str = DEFAULT_CONFIG_PATH, strategy: Optional[str] = None):
    """Track the camera and play the mapped sound until interrupted."""
    # Handler first, so records emitted while loading the config are kept.
    configure_logging()
    runtime = build_runtime(Path(config), strategy=strategy)
    configure_logging(runtime.config_store.config.logging.level)
    session = runtime.session_manager
    session.start()
    try:
        while not session.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()
    return session.status()["message"]


def show_config(config: str = DEFAULT_CONFIG_PATH):
    """Print the effective configuration as YAML."""
    return ConfigStore(Path(config)).dump()


def list_strategies():
    """List the available motion-to-sound mapping strategies."""
    return "\n".join(sorted(mapping_strategies))


def main():
    argh.dispatch_commands([run, show_config, list_strategies])


if __name__ == "__main__":
    main()
