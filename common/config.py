import os
import yaml
from dataclasses import dataclass, replace
from typing import Optional


def _read(path: str):
    with open(path, "r") as f:
        return yaml.safe_load(f)


@dataclass(frozen=True)
class Logging:
    level: str = "INFO"

@dataclass(frozen=True)
class Loading:
    growth_chunk: int = 100_000

@dataclass(frozen=True)
class Colorization:
    max_distance: Optional[float] = None   # not squared; None = unbounded
    default_color: str = "000000"          # RRGGBB
    jobs: str = "auto"                     # "auto" or a positive integer
    chunk_size: int = 65_536
    index: str = "kdtree"                  # kdtree | brute | flann
    leaf_size: int = 16

@dataclass(frozen=True)
class Output:
    float_format: str = "compact"          # compact | fixed
    export_cloud: Optional[str] = None


@dataclass(frozen=True)
class Config:
    logging: Logging = Logging()
    loading: Loading = Loading()
    colorization: Colorization = Colorization()
    output: Output = Output()

def load_config(path: Optional[str]) -> Config:
    cfg = Config()
    if path and os.path.isfile(path):
        data = _read(path) or {}
        logging = replace(cfg.logging, **(data.get("logging", {}) or {}))
        loading = replace(cfg.loading, **(data.get("loading", {}) or {}))
        colorization = replace(cfg.colorization, **(data.get("colorization", {}) or {}))
        output = replace(cfg.output, **(data.get("output", {}) or {}))
        cfg = replace(cfg, logging=logging, loading=loading, colorization=colorization, output=output)
    return cfg
