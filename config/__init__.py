"""Config package."""
from .config import HermesConfig, RoutingConfig, load_config, save_example_config

__all__ = ["HermesConfig", "RoutingConfig", "load_config", "save_example_config"]
