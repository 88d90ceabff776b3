"""Command-line interface for popmix."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import click
import numpy as np

from .config import MIXTURE_PRESETS, AnalysisConfig, load_config
from .config_validator import validate_config_file
from .dataset import Dataset
from .distance import DistanceResult, rank_target
from .exceptions import PopMixError
from .gmm import GMMResult, run_gmm
from .io import load_dataset
from .logging_config import log_system_info, setup_logging
from .mixture import MixtureResult, MixtureSummary, run_all_mixtures, run_mixture
from .rng import choose_rng


@dataclass(slots=True)
class CLIContext:
    """Shared CLI configuration."""

    seed: Optional[int]
    config: AnalysisConfig


def _load_analysis_config(config_path: Optional[Path], seed: Optional[int]) -> AnalysisConfig:
    """Load an analysis configuration, falling back to defaults."""
    if config_path is None:
        config = AnalysisConfig()
    else:
        if not config_path.exists():
            raise click.ClickException(f"Configuration file not found: {config_path}")
        try:
            config = load_config(config_path)
        except PopMixError as exc:
            raise click.ClickException(f"Failed to load configuration {config_path}: {exc}") from exc

    if seed is not None:
        config.seed = seed
    return config


def _json_ready(payload: Any) -> Any:
    """Recursively convert numpy values to native Python types for JSON output."""
    if isinstance(payload, dict):
        return {key: _json_ready(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_json_ready(item) for item in payload]
    if isinstance(payload, np.ndarray):
        return _json_ready(payload.tolist())
    if isinstance(payload, np.bool_):
        return bool(payload)
    if isinstance(payload, np.integer):
        return int(payload)
    if isinstance(payload, np.floating):
        return float(payload)
    return payload


def _emit(payload: Dict[str, Any], output: Optional[Path]) -> None:
    text = json.dumps(_json_ready(payload), indent=2)
    if output is None:
        click.echo(text)
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text + "\n", encoding="utf-8")


def _load(source: Path, target: Path) -> Dataset:
    try:
        return load_dataset(source, target)
    except PopMixError as exc:
        raise click.ClickException(str(exc)) from exc


def _validated(config: AnalysisConfig) -> AnalysisConfig:
    try:
        return config.validate()
    except PopMixError as exc:
        raise click.ClickException(str(exc)) from exc


def distance_payload(result: DistanceResult) -> Dict[str, Any]:
    return {
        "kind": result.kind,
        "target": result.target,
        "aggregated": result.aggregated,
        "total": result.total,
        "shown": result.shown,
        "entries": [
            {"rank": e.rank, "name": e.name, "distance": e.distance}
            for e in result.entries
        ],
    }


def mixture_payload(result: MixtureResult, include_zeroes: bool = False) -> Dict[str, Any]:
    entries = [
        {"name": e.name, "weight": e.weight, "importance": e.importance}
        for e in result.entries
        if include_zeroes or e.weight != 0
    ]
    return {
        "kind": result.kind,
        "target": result.target,
        "distance": result.distance,
        "aggregated": result.aggregated,
        "importance_computed": result.importance is not None,
        "entries": entries,
    }


def summary_payload(summary: MixtureSummary) -> Dict[str, Any]:
    return {
        "kind": summary.kind,
        "aggregated": summary.aggregated,
        "mean_distance": summary.mean_distance,
        "columns": list(summary.weights.columns),
        "average": summary.average.tolist(),
        "targets": [
            {
                "target": target,
                "distance": float(summary.distances.iloc[i]),
                "weights": summary.weights.iloc[i].tolist(),
            }
            for i, target in enumerate(summary.weights.index)
        ],
    }


def gmm_payload(result: GMMResult) -> Dict[str, Any]:
    model = result.model
    return {
        "kind": result.kind,
        "k": model.k,
        "criterion": result.criterion,
        "covariance_type": model.covariance_type,
        "log_likelihood": model.log_likelihood,
        "bic": model.bic,
        "aic": model.aic,
        "converged": model.converged,
        "iterations": model.iterations,
        "priors": model.priors,
        "weights": model.weights,
        "means": model.means,
        "covariances": model.covariances,
        "component_order": result.component_order,
        "average_responsibility": result.average_responsibility,
        "candidates": result.candidates,
        "samples": [
            {
                "name": name,
                "cluster": int(label),
                "probability": float(prob),
                "responsibilities": row,
            }
            for name, label, prob, row in zip(
                result.sample_names, result.labels, result.max_probability, result.responsibilities
            )
        ],
    }


@click.group()
@click.option("--seed", default=None, type=int, help="Seed for reproducible runs.")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="Path to an analysis configuration file. Defaults to built-in settings.",
)
@click.option("--log-level", default="WARNING", show_default=True, help="Logging level.")
@click.pass_context
def main(ctx: click.Context, seed: Optional[int], config_path: Optional[Path], log_level: str) -> None:
    """popmix: distance ranking, mixture fitting and Bayesian GMM clustering of profiles."""
    logger = setup_logging(level=log_level)
    if log_level.upper() == "DEBUG":
        log_system_info(logger)
    config = _load_analysis_config(config_path, seed)
    ctx.obj = CLIContext(seed=config.seed, config=config)


input_options = [
    click.option("--source", "source_path", required=True,
                 type=click.Path(exists=True, dir_okay=False, path_type=Path),
                 help="Source profiles (name,v1,v2,...)."),
    click.option("--target", "target_path", required=True,
                 type=click.Path(exists=True, dir_okay=False, path_type=Path),
                 help="Target profiles (name,v1,v2,...)."),
    click.option("--output", type=click.Path(dir_okay=False, path_type=Path),
                 help="Write JSON here instead of stdout."),
]


def with_inputs(func):
    for option in reversed(input_options):
        func = option(func)
    return func


@main.command("distance")
@with_inputs
@click.option("--target-name", help="Target row to rank against. Defaults to the first target.")
@click.option("--top-n", type=int, help="Number of closest sources to report.")
@click.option("--aggregate/--no-aggregate", default=None, help="Merge sources by name prefix before ':'.")
@click.pass_obj
def distance_cmd(
    ctx: CLIContext,
    source_path: Path,
    target_path: Path,
    output: Optional[Path],
    target_name: Optional[str],
    top_n: Optional[int],
    aggregate: Optional[bool],
) -> None:
    """Rank sources by Euclidean distance to a target."""
    config = ctx.config
    if top_n is not None:
        config.distance.top_n = top_n
    if aggregate is not None:
        config.distance.aggregate = aggregate
    _validated(config)

    dataset = _load(source_path, target_path)
    name = target_name if target_name is not None else dataset.target.names[0]
    try:
        result = rank_target(dataset, name, config.distance)
    except PopMixError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit(distance_payload(result), output)


@main.command("mixture")
@with_inputs
@click.option("--target-name", help="Target row to fit. Defaults to the first target.")
@click.option("--all", "all_targets", is_flag=True, help="Fit every target and print a summary matrix.")
@click.option("--preset", type=click.Choice(sorted(MIXTURE_PRESETS)),
              help="Named slots, cycles and permutations. Explicit options override it.")
@click.option("--slots", type=int, help="Weight granularity (100-100000).")
@click.option("--cycles", "cycles_multiplier", type=int, help="Sweep multiplier (100-100000).")
@click.option("--aggregate/--no-aggregate", default=None, help="Sum weights by name prefix before ':'.")
@click.option("--importance/--no-importance", default=None, help="Compute permutation importance.")
@click.option("--permutations", type=int, help="Shuffled reruns per source.")
@click.option("--used-only/--all-sources", default=None, help="Limit importance to sources with nonzero weight.")
@click.option("--print-zeroes", is_flag=True, help="Include sources with zero weight.")
@click.pass_obj
def mixture_cmd(
    ctx: CLIContext,
    source_path: Path,
    target_path: Path,
    output: Optional[Path],
    target_name: Optional[str],
    all_targets: bool,
    preset: Optional[str],
    slots: Optional[int],
    cycles_multiplier: Optional[int],
    aggregate: Optional[bool],
    importance: Optional[bool],
    permutations: Optional[int],
    used_only: Optional[bool],
    print_zeroes: bool,
) -> None:
    """Fit targets as non-negative mixtures of sources."""
    config = ctx.config
    mix = config.mixture
    if preset is not None:
        mix.apply_preset(preset)
    if slots is not None:
        mix.slots = slots
    if cycles_multiplier is not None:
        mix.cycles_multiplier = cycles_multiplier
    if aggregate is not None:
        mix.aggregate = aggregate
    if importance is not None:
        mix.importance.enabled = importance
    if permutations is not None:
        mix.importance.permutations = permutations
    if used_only is not None:
        mix.importance.used_only = used_only
    _validated(config)

    dataset = _load(source_path, target_path)
    rng = choose_rng(ctx.seed)
    try:
        if all_targets:
            summary = run_all_mixtures(dataset, mix, rng)
            _emit(summary_payload(summary), output)
            return
        name = target_name if target_name is not None else dataset.target.names[0]
        index = dataset.target.index_of(name)
        result = run_mixture(dataset, index, mix, rng, progress=lambda msg: click.echo(msg, err=True))
    except PopMixError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit(mixture_payload(result, include_zeroes=print_zeroes), output)


@main.command("gmm")
@with_inputs
@click.option("--k", type=int, help="Number of components when no criterion is used.")
@click.option("--min-k", type=int, help="Smallest k tried by model selection.")
@click.option("--max-k", type=int, help="Largest k tried by model selection.")
@click.option("--criterion", type=click.Choice(["none", "aic", "bic"]), help="Model-order criterion.")
@click.option("--covariance-type", type=click.Choice(["diag", "full"]), help="Covariance structure.")
@click.option("--max-iter", type=int, help="Maximum EM iterations.")
@click.option("--tol", type=float, help="Log-likelihood convergence tolerance.")
@click.pass_obj
def gmm_cmd(
    ctx: CLIContext,
    source_path: Path,
    target_path: Path,
    output: Optional[Path],
    **overrides: Any,
) -> None:
    """Cluster pooled source and target rows with a Bayesian GMM."""
    config = ctx.config
    for key, value in overrides.items():
        if value is not None:
            setattr(config.gmm, key, value)
    _validated(config)

    dataset = _load(source_path, target_path)
    try:
        result = run_gmm(dataset, config.gmm, choose_rng(ctx.seed))
    except PopMixError as exc:
        raise click.ClickException(str(exc)) from exc
    _emit(gmm_payload(result), output)


@main.command("validate-config")
@click.argument("config_file", type=click.Path(path_type=Path))
def validate_config_cmd(config_file: Path) -> None:
    """Check a configuration file and list errors and warnings."""
    try:
        is_valid, errors, warnings = validate_config_file(config_file)
    except PopMixError as exc:
        raise click.ClickException(str(exc)) from exc

    for warning in warnings:
        click.echo(f"warning: {warning}")
    for error in errors:
        click.echo(f"error: {error}")
    if not is_valid:
        raise SystemExit(1)
    click.echo("Configuration is valid.")


if __name__ == "__main__":  # pragma: no cover
    main()
