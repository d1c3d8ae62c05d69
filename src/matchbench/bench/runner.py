"""
Sweep runner: checks a list of matchers against the oracles from a YAML config.

Usage (from repo root):
    python -m matchbench.bench.runner path/to/sweep.yaml

Config keys:
    experiment_name: str            # required
    output_dir: str                 # required
    seed: int                       # required
    trials: int                     # optional, default 75
    n: int                          # optional, default 15
    matchers:                       # required, non-empty
      - name: gs_company
        target: "mypkg.matching:stable_matching"     # module:function
        oracle: outcome                              # outcome | trace

Outputs in a new run directory:
    - config_resolved.yaml    # the config we actually used (defaults filled in)
    - meta.json               # environment info (python, library versions, oracle params, cpu/ram, git commit)
    - results.jsonl           # one JSON line per matcher verdict
    - summary.csv             # status, trials run, call timings per matcher
    - (console) rich/tqdm summaries

Design notes:
- Every matcher gets a generator seeded from the same `seed`, so all matchers
  are checked against identical inputs.
- A matcher that raises is recorded with status "error"; the sweep continues.
"""

from __future__ import annotations

import argparse
import datetime as _dt
import importlib
import importlib.metadata
import json
import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import pandas as pd
import psutil
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from tqdm import tqdm

# Project imports
from matchbench.bench.measure import InstrumentedMatcher
from matchbench.validate.oracle import (
    DEFAULT_N,
    DEFAULT_TRIALS,
    run_outcome_oracle,
    run_trace_oracle,
)
from matchbench.validate.violations import OracleReport

_console = Console()

ORACLES: Dict[str, Callable[..., OracleReport]] = {
    "outcome": run_outcome_oracle,
    "trace": run_trace_oracle,
}

SUMMARY_COLUMNS = ["name", "oracle", "status", "trials_run", "violation_kind", "median_call_ms", "max_call_ms"]


# ------------------------- data structures ------------------------- #

@dataclass(frozen=True)
class MatcherSpec:
    name: str
    target: str
    oracle: str
    fn: Any


@dataclass(frozen=True)
class SweepOutcome:
    run_dir: Path
    summary: pd.DataFrame

    @property
    def all_passed(self) -> bool:
        return bool((self.summary["status"] == "pass").all())


# ------------------------- helpers: IO & meta ------------------------- #

def _load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f)
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {path} must be a YAML mapping; got {type(cfg).__name__}")
    return cfg


def _write_yaml(obj: Dict[str, Any], path: Path) -> None:
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(obj, f, sort_keys=False, default_flow_style=False)


def _json_default(obj: Any) -> Any:
    # Matchers may hand back numpy scalars; they end up in violation details.
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, Path):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _append_jsonl(record: Dict[str, Any], path: Path) -> None:
    line = json.dumps(record, separators=(",", ":"), ensure_ascii=False, default=_json_default)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")


def _timestamp() -> str:
    return _dt.datetime.now().strftime("%Y%m%d_%H%M%S")


def _ensure_run_dir(base_dir: Path, experiment_name: str) -> Path:
    base_dir.mkdir(parents=True, exist_ok=True)
    run_dir = base_dir / f"{_timestamp()}_{experiment_name}"
    suffix = 1
    while run_dir.exists():
        run_dir = base_dir / f"{_timestamp()}_{experiment_name}_{suffix}"
        suffix += 1
    run_dir.mkdir(parents=False, exist_ok=False)
    return run_dir


def _git_commit_short() -> Optional[str]:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode("utf-8").strip()
    except (OSError, subprocess.CalledProcessError):
        return None


def _dist_version(name: str) -> Optional[str]:
    try:
        return importlib.metadata.version(name)
    except importlib.metadata.PackageNotFoundError:
        return None


def _gather_meta(trials: int, n: int, seed: int) -> Dict[str, Any]:
    import platform
    meta = {
        "python": platform.python_version(),
        "matchbench": _dist_version("matchbench"),
        "libraries": {
            "numpy": np.__version__,
            "pandas": pd.__version__,
            "psutil": psutil.__version__,
            "pyyaml": yaml.__version__,
            "rich": _dist_version("rich"),
            "tqdm": _dist_version("tqdm"),
        },
        "oracle": {"trials": trials, "n": n, "seed": seed},
        "git_commit": _git_commit_short(),
        "machine": {
            "cpu": platform.processor() or platform.machine(),
            "cores_logical": psutil.cpu_count(logical=True),
            "ram_gb": round(psutil.virtual_memory().total / (1024**3), 2),
            "platform": platform.platform(),
        },
        "start_time": _dt.datetime.now().isoformat(timespec="seconds"),
        "pid": os.getpid(),
    }
    return meta


def _resolve_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(cfg, dict):
        raise ValueError("Config must be a YAML mapping")
    required = ["experiment_name", "output_dir", "seed", "matchers"]
    missing = [k for k in required if k not in cfg]
    if missing:
        raise ValueError(f"Missing required config keys: {missing}")

    resolved = dict(cfg)
    resolved.setdefault("trials", DEFAULT_TRIALS)
    resolved.setdefault("n", DEFAULT_N)
    for key in ("seed", "trials", "n"):
        if not isinstance(resolved[key], int) or isinstance(resolved[key], bool):
            raise ValueError(f"Config '{key}' must be an integer")
    if resolved["trials"] < 0 or resolved["n"] < 0:
        raise ValueError("Config 'trials' and 'n' must be nonnegative")
    if not isinstance(resolved["matchers"], list) or not resolved["matchers"]:
        raise ValueError("Config 'matchers' must be a non-empty list")
    return resolved


def _import_target(target: str) -> Any:
    # Accept "pkg.module:function" or "pkg.module.function".
    if ":" in target:
        module_name, _, attr = target.partition(":")
    else:
        module_name, _, attr = target.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"Matcher target must look like 'module:function'; got {target!r}")
    try:
        mod = importlib.import_module(module_name)
    except ImportError as e:
        raise ImportError(f"Could not import matcher module {module_name!r}: {e!r}") from e
    if not hasattr(mod, attr):
        raise AttributeError(f"Matcher module {module_name!r} has no attribute {attr!r}")
    fn = getattr(mod, attr)
    if not callable(fn):
        raise TypeError(f"Matcher target {target!r} is not callable")
    return fn


def _resolve_matchers(cfg_matchers: List[Dict[str, Any]]) -> List[MatcherSpec]:
    specs: List[MatcherSpec] = []
    seen = set()
    for entry in cfg_matchers:
        if not isinstance(entry, dict):
            raise ValueError("Each matcher entry must be a mapping")
        name = entry.get("name", None)
        if not name or not isinstance(name, str):
            raise ValueError("Each matcher must have a string 'name' field")
        if name in seen:
            raise ValueError(f"Duplicate matcher name in config: {name}")
        seen.add(name)

        target = entry.get("target", None)
        if not target or not isinstance(target, str):
            raise ValueError(f"Matcher '{name}': 'target' must be a 'module:function' string")

        oracle = entry.get("oracle", "outcome")
        if oracle not in ORACLES:
            raise ValueError(f"Matcher '{name}': unknown oracle {oracle!r}. Supported: {sorted(ORACLES)}")

        specs.append(MatcherSpec(name=name, target=target, oracle=oracle, fn=_import_target(target)))
    return specs


def _check_matcher(spec: MatcherSpec, *, trials: int, n: int, seed: int) -> Dict[str, Any]:
    """Run one matcher through its oracle and return the JSON record for it."""
    wrapped = InstrumentedMatcher(spec.fn, defensive_copy=True)
    rng = np.random.default_rng(seed)
    record: Dict[str, Any] = {
        "name": spec.name,
        "target": spec.target,
        "oracle": spec.oracle,
        "n": n,
        "trials": trials,
    }
    try:
        report = ORACLES[spec.oracle](wrapped, trials=trials, n=n, rng=rng)
    except Exception as e:
        # Errors from the matcher itself (including input mutation) end its check.
        record.update({"status": "error", "trials_run": wrapped.calls, "error": repr(e)})
    else:
        record["trials_run"] = report.trials_run
        if report.ok:
            record["status"] = "pass"
        else:
            v = report.violation
            record.update(
                {
                    "status": "fail",
                    "violation_kind": v.kind.value,
                    "violation_message": v.message,
                    "violation_trial": v.trial,
                    "violation_details": v.details,
                }
            )
    record.update(wrapped.stats())
    return record


def _aggregate_summary(jsonl_path: Path) -> pd.DataFrame:
    if not jsonl_path.exists():
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    df = pd.read_json(jsonl_path, lines=True)
    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    for col in ("violation_kind", "median_call_ns", "max_call_ns"):
        if col not in df.columns:
            df[col] = None
    out = df[["name", "oracle", "status", "trials_run", "violation_kind"]].copy()
    out["median_call_ms"] = df["median_call_ns"].astype("float64") / 1e6
    out["max_call_ms"] = df["max_call_ns"].astype("float64") / 1e6
    return out.sort_values(["oracle", "name"], ignore_index=True)


def _print_rich_summary(summary: pd.DataFrame) -> None:
    table = Table(title="Oracle Summary")
    table.add_column("Matcher", style="bold")
    table.add_column("Oracle")
    table.add_column("Verdict")
    table.add_column("Trials", justify="right")
    table.add_column("Median call (ms)", justify="right")

    styles = {"pass": "green", "fail": "red", "error": "yellow"}
    for row in summary.itertuples(index=False):
        verdict = f"[{styles.get(row.status, 'white')}]{row.status}[/]"
        if isinstance(row.violation_kind, str):
            verdict += f" ({row.violation_kind})"
        median = "—" if pd.isna(row.median_call_ms) else f"{row.median_call_ms:.3f}"
        table.add_row(row.name, row.oracle, verdict, str(int(row.trials_run)), median)
    _console.print()
    _console.print(table)
    _console.print()


# ------------------------- core runner ------------------------- #

def run_experiment(config_path: Path) -> SweepOutcome:
    cfg = _resolve_config(_load_yaml(config_path))

    experiment_name: str = str(cfg["experiment_name"])
    output_dir = Path(cfg["output_dir"])
    seed: int = int(cfg["seed"])
    trials: int = int(cfg["trials"])
    n: int = int(cfg["n"])

    # Resolve targets before creating any output
    matchers: List[MatcherSpec] = _resolve_matchers(list(cfg["matchers"]))

    run_dir = _ensure_run_dir(output_dir, experiment_name)
    results_path = run_dir / "results.jsonl"
    summary_path = run_dir / "summary.csv"
    meta_path = run_dir / "meta.json"
    cfg_resolved_path = run_dir / "config_resolved.yaml"

    # Persist resolved config early
    _write_yaml(cfg, cfg_resolved_path)

    meta = _gather_meta(trials=trials, n=n, seed=seed)
    with meta_path.open("w", encoding="utf-8") as f:
        json.dump(meta, f, indent=2, default=_json_default)

    _console.print(f"[bold green]Run directory:[/bold green] {run_dir}")
    _console.print(f"[bold]Experiment:[/bold] {experiment_name}  (trials={trials}, n={n}, seed={seed})")
    _console.print(f"[bold]Matchers:[/bold] {', '.join(m.name for m in matchers)}")
    _console.print()

    for spec in tqdm(matchers, desc="Matchers", unit="matcher"):
        record = _check_matcher(spec, trials=trials, n=n, seed=seed)
        _append_jsonl(record, results_path)
        if record["status"] == "fail":
            _console.print(f"[bold red]{spec.name} failed[/bold red] in trial {record['violation_trial']}: {escape(record['violation_message'])}")
        elif record["status"] == "error":
            _console.print(f"[bold yellow]{spec.name} raised[/bold yellow] {escape(record['error'])}")

    # Aggregate → summary.csv
    summary_df = _aggregate_summary(results_path)
    summary_df.to_csv(summary_path, index=False)

    _print_rich_summary(summary_df)

    _console.print(f"[bold green]Done.[/bold green] Wrote:")
    _console.print(f" - {results_path}")
    _console.print(f" - {summary_path}")
    _console.print(f" - {meta_path}")
    _console.print(f" - {cfg_resolved_path}")

    return SweepOutcome(run_dir=run_dir, summary=summary_df)


# ------------------------- CLI ------------------------- #

def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Check stable-matching implementations against the oracles.")
    p.add_argument("config", type=str, help="Path to YAML sweep config")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    config_path = Path(args.config).resolve()
    if not config_path.exists():
        raise SystemExit(f"Config file not found: {config_path}")
    try:
        outcome = run_experiment(config_path)
    except Exception as e:
        _console.print(f"[bold red]Runner failed:[/bold red] {e!r}")
        raise
    return 0 if outcome.all_passed else 1


if __name__ == "__main__":
    sys.exit(main())
