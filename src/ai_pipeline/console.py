"""Console progress reporting for pipeline runs."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from rich.console import Console
from rich.table import Table

from ai_pipeline.schemas import (
    IterationResult,
    IterationStatus,
    PipelineConfig,
    PipelineRun,
    RunState,
    StepDefinition,
    StepExecutionResult,
)


class PipelineReporter(Protocol):
    def run_started(self, run: PipelineRun, config: PipelineConfig) -> None: ...

    def iteration_started(self, iteration: int, steps_to_run: int) -> None: ...

    def step_started(self, definition: StepDefinition) -> None: ...

    def step_finished(self, definition: StepDefinition, result: StepExecutionResult) -> None: ...

    def iteration_finished(self, result: IterationResult) -> None: ...

    def run_finished(self, run: PipelineRun, results_path: Path) -> None: ...


class NullReporter:
    """Reporter that prints nothing."""

    def run_started(self, run: PipelineRun, config: PipelineConfig) -> None:
        pass

    def iteration_started(self, iteration: int, steps_to_run: int) -> None:
        pass

    def step_started(self, definition: StepDefinition) -> None:
        pass

    def step_finished(self, definition: StepDefinition, result: StepExecutionResult) -> None:
        pass

    def iteration_finished(self, result: IterationResult) -> None:
        pass

    def run_finished(self, run: PipelineRun, results_path: Path) -> None:
        pass


def summary_table(run: PipelineRun) -> Table:
    """Build a table with one row per iteration."""
    table = Table(title="Pipeline Summary", show_header=True)
    table.add_column("Iteration", justify="right")
    table.add_column("Status")
    table.add_column("Steps", justify="right")
    table.add_column("Warnings", justify="right")
    table.add_column("Failed step")
    for it in run.iterations:
        style = "green" if it.status == IterationStatus.SUCCESS else "red"
        table.add_row(
            str(it.iteration),
            f"[{style}]{it.status.value}[/{style}]",
            str(len(it.steps)),
            str(it.total_warnings),
            it.failed_step or "",
        )
    return table


class ConsoleReporter:
    """Colored per-step lines and a final summary table."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def run_started(self, run: PipelineRun, config: PipelineConfig) -> None:
        self.console.rule("[bold blue]AI Safe Pipeline Runner[/bold blue]")
        self.console.print(f"Branch: [green]{run.branch}[/green]")
        self.console.print(f"Feature: [green]{run.feature}[/green]")
        self.console.print(f"Max Iterations: [green]{run.max_iterations}[/green]")
        self.console.print(
            f"Steps per iteration: [green]{config.min_steps}-{config.max_steps}[/green] "
            f"of [green]{len(config.steps)}[/green] available"
        )

    def iteration_started(self, iteration: int, steps_to_run: int) -> None:
        self.console.rule(f"[bold blue]Iteration {iteration}[/bold blue]")
        self.console.print(f"Running [green]{steps_to_run}[/green] steps for this iteration")

    def step_started(self, definition: StepDefinition) -> None:
        self.console.print(f"[yellow]Running step: {definition.display_name}[/yellow]")

    def step_finished(self, definition: StepDefinition, result: StepExecutionResult) -> None:
        if result.skipped:
            self.console.print(f"[yellow]- {definition.display_name} skipped: {result.error}[/yellow]")
            return
        if result.passed:
            extra = f" ({result.warnings} warnings)" if result.warnings else ""
            self.console.print(
                f"[green]✓ {definition.display_name} passed in {result.duration_seconds:.1f}s{extra}[/green]"
            )
            return
        reason = f": {result.error}" if result.error else ""
        required = " (required)" if definition.required else ""
        self.console.print(
            f"[red]✗ {definition.display_name}{required} failed with exit code "
            f"{result.exit_code}{reason}[/red]"
        )

    def iteration_finished(self, result: IterationResult) -> None:
        if result.status == IterationStatus.SUCCESS:
            self.console.print(f"[green]Iteration {result.iteration} completed successfully[/green]")
        else:
            self.console.print(
                f"[red]Iteration {result.iteration} failed at required step {result.failed_step}[/red]"
            )

    def run_finished(self, run: PipelineRun, results_path: Path) -> None:
        self.console.rule()
        if run.state == RunState.ABORTED:
            last = run.last_iteration
            failed = last.failed_step if last else "?"
            self.console.print(f"[bold red]Pipeline aborted: required step {failed} failed[/bold red]")
        else:
            reason = run.stop_reason.value if run.stop_reason else "completed"
            self.console.print(
                f"[bold green]Pipeline completed after {len(run.iterations)} "
                f"iteration(s) ({reason})[/bold green]"
            )
        self.console.print(f"Results saved to: [yellow]{results_path}[/yellow]")
        self.console.print(summary_table(run))
