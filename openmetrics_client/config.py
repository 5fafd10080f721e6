"""Configuration models using Pydantic for validation."""
from typing import Dict, List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
import os


MetricType = Literal["counter", "gauge", "histogram", "gaugehistogram", "summary", "stateset", "info", "unknown"]


class WorkloadConfig(BaseModel):
    """Synthetic workload that drives a metric on every engine tick."""
    algorithm: Literal["poisson", "constant", "random_walk", "sine", "lognormal", "exponential", "cycle"]
    label_values: Dict[str, List[str]] = Field(default_factory=dict)
    seed: Optional[int] = None

    # Rates and distributions
    base_rate: Optional[float] = None
    mu: Optional[float] = None
    sigma: Optional[float] = None
    lam: Optional[float] = None

    # Random walk
    start: Optional[float] = None
    step: Optional[float] = None

    # Periodic
    min: Optional[float] = None
    max: Optional[float] = None
    period_s: Optional[int] = None


class MetricConfig(BaseModel):
    """Configuration for a single metric."""
    name: str
    type: MetricType
    help: str = ""
    unit: Optional[str] = None
    label_names: List[str] = Field(default_factory=list)

    # Histogram / GaugeHistogram
    buckets: Optional[List[float]] = None

    # Summary
    quantiles: Optional[List[float]] = None
    max_age_seconds: float = 600.0
    age_buckets: int = 5

    # StateSet
    states: Optional[List[str]] = None

    # Unknown
    value: Optional[float] = None

    workload: Optional[WorkloadConfig] = None

    @model_validator(mode='after')
    def validate_type_parameters(self):
        """Check that type-specific parameters fit the metric type."""
        if self.type == "stateset" and not self.states:
            raise ValueError(f"StateSet metric '{self.name}' requires a non-empty 'states' list")
        if self.workload:
            unknown = set(self.workload.label_values) - set(self.label_names)
            if unknown:
                raise ValueError(f"Metric '{self.name}' workload uses undeclared labels: {sorted(unknown)}")
            missing = set(self.label_names) - set(self.workload.label_values)
            if missing:
                raise ValueError(f"Metric '{self.name}' workload has no values for labels: {sorted(missing)}")
        return self


class RegistryConfig(BaseModel):
    """Registry configuration."""
    prefix: Optional[str] = None


class ServerConfig(BaseModel):
    """HTTP exposition and control API configuration."""
    enabled: bool = True
    port: int = 8000
    bind_address: str = "0.0.0.0"


class GlobalConfig(BaseModel):
    """Global configuration settings."""
    tick_interval_s: float = 1.0
    seed: int = 42
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "text"


class Config(BaseModel):
    """Root configuration model."""
    model_config = ConfigDict(populate_by_name=True)

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    metrics: List[MetricConfig]

    @field_validator('metrics')
    @classmethod
    def validate_metrics(cls, v):
        """Validate metric configurations."""
        if not v:
            raise ValueError("At least one metric must be defined")

        names = [m.name for m in v]
        if len(names) != len(set(names)):
            raise ValueError("Metric names must be unique")

        return v


def load_config(config_path: str) -> Config:
    """Load and validate configuration from YAML file."""
    import yaml

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw_config = yaml.safe_load(f) or {}

    # Apply environment variable overrides
    if env_log_level := os.getenv('LOG_LEVEL'):
        raw_config.setdefault('global', {})['log_level'] = env_log_level

    if env_port := os.getenv('METRICS_PORT'):
        raw_config.setdefault('server', {})['port'] = int(env_port)

    if env_prefix := os.getenv('METRICS_PREFIX'):
        raw_config.setdefault('registry', {})['prefix'] = env_prefix

    try:
        config = Config(**raw_config)
        return config
    except Exception as e:
        raise ValueError(f"Configuration validation failed: {e}")
