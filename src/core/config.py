"""
Run configuration loaded from YAML.

The file layout mirrors ``config/problem_config.yaml``:

    problem:       a, b, q, r, p_terminal, x_target, x0, horizon
    state_grid:    min, max, step
    control_grid:  min, max, step
    solver:        workers, chunk_size
    output:        directory, plot

Any section or key that is absent falls back to the reference scenario in
:mod:`core.constants`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from core import constants as C
from core.grid import DiscreteGrid, make_grid


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "problem_config.yaml"


@dataclass(frozen=True)
class ProblemConfig:
    a: float = C.REF_A
    b: float = C.REF_B
    q: float = C.REF_Q
    r: float = C.REF_R
    p_terminal: float = C.REF_P_TERMINAL
    x_target: float = C.REF_X_TARGET
    x0: float = C.REF_X0
    horizon: int = C.REF_HORIZON


@dataclass(frozen=True)
class GridConfig:
    min: float
    max: float
    step: float

    def build(self, name: str) -> DiscreteGrid:
        return make_grid(self.min, self.max, self.step, name=name)


@dataclass(frozen=True)
class SolverConfig:
    workers: int = C.DEFAULT_WORKERS
    chunk_size: int = C.DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class OutputConfig:
    directory: str = C.DEFAULT_OUTPUT_DIR
    plot: bool = True


@dataclass(frozen=True)
class RunConfig:
    problem: ProblemConfig = field(default_factory=ProblemConfig)
    state_grid: GridConfig = field(
        default_factory=lambda: GridConfig(C.REF_X_MIN, C.REF_X_MAX, C.REF_DX)
    )
    control_grid: GridConfig = field(
        default_factory=lambda: GridConfig(C.REF_U_MIN, C.REF_U_MAX, C.REF_DU)
    )
    solver: SolverConfig = field(default_factory=SolverConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ValueError(f"config section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def _number(section: Dict[str, Any], key: str, default, kind=float):
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"config key '{key}' must be numeric, got {value!r}")
    if kind is int:
        if float(value) != int(value):
            raise ValueError(f"config key '{key}' must be an integer, got {value!r}")
        return int(value)
    return float(value)


def parse_config(raw: Optional[Dict[str, Any]]) -> RunConfig:
    """Convert a raw YAML mapping into a :class:`RunConfig`."""
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ValueError("configuration root must be a mapping")

    defaults = RunConfig()

    p = _section(raw, "problem")
    d = defaults.problem
    problem = ProblemConfig(
        a=_number(p, "a", d.a),
        b=_number(p, "b", d.b),
        q=_number(p, "q", d.q),
        r=_number(p, "r", d.r),
        p_terminal=_number(p, "p_terminal", d.p_terminal),
        x_target=_number(p, "x_target", d.x_target),
        x0=_number(p, "x0", d.x0),
        horizon=_number(p, "horizon", d.horizon, kind=int),
    )

    grids = {}
    for name in ("state_grid", "control_grid"):
        g = _section(raw, name)
        dg = getattr(defaults, name)
        grids[name] = GridConfig(
            min=_number(g, "min", dg.min),
            max=_number(g, "max", dg.max),
            step=_number(g, "step", dg.step),
        )

    s = _section(raw, "solver")
    solver = SolverConfig(
        workers=_number(s, "workers", defaults.solver.workers, kind=int),
        chunk_size=_number(s, "chunk_size", defaults.solver.chunk_size, kind=int),
    )

    o = _section(raw, "output")
    output = OutputConfig(
        directory=str(o.get("directory", defaults.output.directory)),
        plot=bool(o.get("plot", defaults.output.plot)),
    )

    return RunConfig(
        problem=problem,
        state_grid=grids["state_grid"],
        control_grid=grids["control_grid"],
        solver=solver,
        output=output,
    )


def load_config(config_path: Optional[Union[str, Path]] = None) -> RunConfig:
    """
    Load the run configuration from a YAML file.

    Args:
        config_path: Path to YAML config. Defaults to config/problem_config.yaml
            in the source checkout; when that file is absent (non-editable
            install) the built-in reference scenario is returned.

    Returns:
        Parsed RunConfig
    """
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.is_file():
            logger.warning(
                "Default config %s not found, using built-in reference scenario",
                DEFAULT_CONFIG_PATH,
            )
            return RunConfig()
        path = DEFAULT_CONFIG_PATH
    else:
        path = Path(config_path)
    logger.info("Loading configuration from: %s", path)
    with open(path, "r") as f:
        raw = yaml.safe_load(f)
    return parse_config(raw)
