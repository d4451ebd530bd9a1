"""Helpers shared by the command implementations."""

from contextlib import contextmanager
from pathlib import Path
from typing import NoReturn

import yaml
from rich.console import Console
from rich.markup import escape
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TimeElapsedColumn,
)

from pour.core.config import PourConfig
from pour.core.errors import (
    InvalidSpecification,
    PourError,
    UserError,
    exit_code_for,
    format_error_message,
)
from pour.core.events import (
    ExtractionStarted,
    ExtractionUpdated,
    FetchProgress,
    FetchStarted,
    LinkingStarted,
    LinkingUpdated,
    RepairStarted,
    RepairUpdated,
)
from pour.core.resolution import ProjectContext
from pour.models.formula import Formula
from pour.models.spec import PackageSpecification

console = Console()


def load_config(use_global: bool = False) -> PourConfig:
    """Project-local config inside a project, the global one otherwise."""
    try:
        config = PourConfig.default()
    except PourError as e:
        fail(e)
    if not use_global:
        context = ProjectContext(Path.cwd())
        if context.is_project:
            config = config.for_project(context.project_root)
    config.ensure_dirs()
    return config


def fail(error: PourError) -> NoReturn:
    """Print an error and exit with its category's code."""
    console.print(f"[red]Error:[/red] {escape(format_error_message(error))}")
    raise SystemExit(exit_code_for(error))


def parse_spec(token: str) -> PackageSpecification:
    spec = PackageSpecification.parse(token)
    if not spec.is_valid:
        raise InvalidSpecification(token)
    return spec


def load_formula_file(path: Path) -> Formula:
    """Read a YAML or JSON rendering of a formula record."""
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise UserError(f"Could not parse {path}: {e}", context={"path": str(path)}) from e

    if not isinstance(data, dict):
        raise UserError(f"{path} does not contain a formula record", context={"path": str(path)})
    try:
        return Formula.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise UserError(f"Invalid formula file: {e}", context={"path": str(path)}) from e


def resolve_formula(spec: PackageSpecification, formula_file: Path | None, cache) -> Formula:
    """Formula for a spec, from a file (then cached) or from the cache."""
    if formula_file is not None:
        formula = load_formula_file(formula_file)
        if formula.name != spec.name:
            raise UserError(
                f"Formula file describes {formula.name}, not {spec.name}",
                context={"path": str(formula_file)},
            )
        cache.set(formula)
    else:
        formula = cache.get(spec.name)
        if formula is None:
            raise UserError(
                f"No formula known for {spec.name}; pass one with --formula FILE",
                context={"package": spec.name},
            )

    if spec.version and spec.version != formula.version:
        raise UserError(
            f"Formula for {spec.name} is version {formula.version}, not {spec.version}",
            context={"package": spec.name},
        )
    return formula


class ProgressSink:
    """Renders fetch and install events as rich progress bars."""

    def __init__(self, progress: Progress):
        self.progress = progress
        self._task: TaskID | None = None

    def _start(self, description: str, total: int | None) -> None:
        if self._task is not None:
            self.progress.update(self._task, visible=False)
        self._task = self.progress.add_task(description, total=total)

    def emit(self, event: object) -> None:
        if isinstance(event, FetchStarted):
            self._start("Downloading", event.total_bytes)
        elif isinstance(event, FetchProgress):
            self.progress.update(self._task, completed=event.bytes_done)
        elif isinstance(event, ExtractionStarted):
            self._start("Extracting", event.total_files)
        elif isinstance(event, ExtractionUpdated):
            self.progress.update(self._task, completed=event.files_extracted)
        elif isinstance(event, RepairStarted):
            self._start("Relocating", event.total_files)
        elif isinstance(event, RepairUpdated):
            self.progress.update(self._task, completed=event.processed)
        elif isinstance(event, LinkingStarted):
            self._start("Linking", event.total_links)
        elif isinstance(event, LinkingUpdated):
            self.progress.update(self._task, completed=event.linked)


@contextmanager
def progress_sink():
    with Progress(
        "[progress.description]{task.description}",
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        yield ProgressSink(progress)
