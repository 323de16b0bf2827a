"""Configuration loading utilities.

Responsibility: Loads and validates engine configuration files with override support,
using Pydantic schemas.
"""

from .loader import load_config, save_run_config
from .schema import EngineConfig, EvaluatorConfig, LoggingConfig, ModelConfig, StrategyConfig, UpdateRuleConfig

__all__ = [
    "load_config",
    "save_run_config",
    "EngineConfig",
    "EvaluatorConfig",
    "LoggingConfig",
    "ModelConfig",
    "StrategyConfig",
    "UpdateRuleConfig",
]
