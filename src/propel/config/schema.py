"""Pydantic schemas defining configuration contracts."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from ..data.dataset import DEFAULT_BLOCK_SIZE


class ModelConfig(BaseModel):
    name: str = "linear"
    parameters: Dict[str, Any] = Field(default_factory=dict)


class UpdateRuleConfig(BaseModel):
    name: str = "gradient_descent"
    learning_rate: float = 0.1
    momentum: float = 0.0
    args: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_controls(cls, value: "UpdateRuleConfig") -> "UpdateRuleConfig":
        if value.learning_rate <= 0:
            raise ValueError("learning_rate must be > 0")
        if not 0.0 <= value.momentum < 1.0:
            raise ValueError("momentum must be in [0, 1)")
        return value


class StrategyConfig(BaseModel):
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)


class EvaluatorConfig(BaseModel):
    worker_count: Optional[int] = None
    block_size: int = DEFAULT_BLOCK_SIZE

    @field_validator("worker_count", "block_size")
    @classmethod
    def _positive(cls, value: Optional[int], info: ValidationInfo) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return value


class LoggingConfig(BaseModel):
    level: str = "INFO"
    log_dir: Optional[str] = None
    json_logs: bool = False


class EngineConfig(BaseModel):
    model: ModelConfig = Field(default_factory=ModelConfig)
    update_rule: UpdateRuleConfig = Field(default_factory=UpdateRuleConfig)
    evaluator: EvaluatorConfig = Field(default_factory=EvaluatorConfig)
    strategies: List[StrategyConfig] = Field(default_factory=list)
    error_function: str = "mse"
    seed: Optional[int] = 42
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "extra": "allow",
        "validate_assignment": True,
    }
