"""Package for configuration-related modules."""

from .cities import CityRegistry, MUNICIPALITIES
from .loader import load_config
from .settings import HarvestConfig

__all__ = ["CityRegistry", "HarvestConfig", "MUNICIPALITIES", "load_config"]
