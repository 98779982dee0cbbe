from mosbot.core.config.loader import load_config
from mosbot.core.config.schema import Config

__all__ = ["Config", "load_config"]
