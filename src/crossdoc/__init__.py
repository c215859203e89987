"""Cross-document query and model-routing engine."""

from .config import EngineSettings, InvokerConfig, RouterConfig, SearchConfig
from .engine import Engine, build_engine

__all__ = [
    "Engine",
    "EngineSettings",
    "InvokerConfig",
    "RouterConfig",
    "SearchConfig",
    "build_engine",
]
