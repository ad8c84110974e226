import os, argparse, logging
import yaml
from typing import Callable, Tuple, Optional, Union
from common.config import load_config, Config

def add_config_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to config file")

def add_log_level_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR)")

def parse_args_with_config(build_parser: Callable[[], argparse.ArgumentParser],
                           defaults_from_cfg: Callable[[Config], dict],
                           argv: Optional[list] = None) -> Tuple[argparse.Namespace, Config]:
    """
    1. Build a parser based on the passed build_parser function
    2. Load the config file based on the --config argument (passed as an argument to the parser)
    3. Construct a dictionary of values from the config file based on the paramters specified in the defaults_from_cfg function
    """
    p = build_parser()
    cfg_path = p.parse_known_args(argv)[0].config
    try:
        cfg = load_config(cfg_path)
        defaults = defaults_from_cfg(cfg)
    except (argparse.ArgumentTypeError, AttributeError, TypeError, ValueError, yaml.YAMLError) as e:
        p.error(f"invalid config {cfg_path}: {e}")
    p.set_defaults(**defaults)
    args = p.parse_args(argv)
    return args, cfg

def setup_logging(log_level: str) -> None:
    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.INFO),
                        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def jobs_arg(value: Union[str, int]) -> Union[str, int]:
    """argparse type for -j: "auto" or an integer."""
    text = str(value).strip().lower()
    if text == "auto":
        return "auto"
    try:
        return int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer or 'auto', got {value!r}")

def non_negative_float_arg(value: Union[str, float]) -> float:
    try:
        f = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number, got {value!r}")
    if not f >= 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative number, got {value!r}")
    return f

def resolve_workers(jobs: Union[str, int]) -> int:
    """Resolve "auto" (or any value below 1) to the number of processing units."""
    if jobs == "auto" or int(jobs) < 1:
        return os.cpu_count() or 1
    return int(jobs)

def positive_int_arg(value: Union[str, int]) -> int:
    try:
        i = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}")
    if i < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return i
