"""Configuration for cometqa runs and scenario amounts."""

from cometqa.config.scenario_config import (
    NETWORK_OVERRIDES,
    ScenarioConfig,
    get_config_for_scenario,
)
from cometqa.config.settings import RunnerSettings, load_settings

__all__ = [
    "NETWORK_OVERRIDES",
    "RunnerSettings",
    "ScenarioConfig",
    "get_config_for_scenario",
    "load_settings",
]
