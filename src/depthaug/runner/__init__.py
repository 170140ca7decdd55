from .config import PipelineConfig, load_config_file, parse_noise_ops
from .orchestration import (
    CompletionTracker,
    Pipeline,
    WorkQueue,
    prepare_pipeline,
    preprocess,
    run_pipeline,
)

__all__ = [
    "config",
    "orchestration",
    "worker",
    "summary",
    "main",
]
