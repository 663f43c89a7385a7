from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from convflac.domain.events import (
    ActionMessage,
    BatchFinished,
    JobCompleted,
    JobFailed,
    JobStarted,
    JobStateChanged,
    MissingBinaries,
    TagsCopied,
    TagWarning,
)
from convflac.domain.models import JobState
from convflac.infrastructure.event_bus import EventBus


class ConsoleReporter:
    """Subscribes to EventBus and prints per-file progress lines."""

    def __init__(self, bus: EventBus, console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console(highlight=False)
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobStateChanged, self.on_state_changed)
        self.bus.subscribe(TagsCopied, self.on_tags_copied)
        self.bus.subscribe(TagWarning, self.on_tag_warning)
        self.bus.subscribe(JobCompleted, self.on_job_completed)
        self.bus.subscribe(JobFailed, self.on_job_failed)
        self.bus.subscribe(ActionMessage, self.on_action_message)
        self.bus.subscribe(MissingBinaries, self.on_missing_binaries)
        self.bus.subscribe(BatchFinished, self.on_batch_finished)

    def on_job_started(self, event: JobStarted):
        self.console.print(f"Processing [bold]'{escape(str(event.job.input_file.path))}'[/bold]...")

    def on_state_changed(self, event: JobStateChanged):
        if event.current == JobState.TAGGING:
            self.console.print("Copying tags...")

    def on_tags_copied(self, event: TagsCopied):
        self.console.print(f"Copying tags... [green]complete[/green] ({event.count} fields)")

    def on_tag_warning(self, event: TagWarning):
        self.console.print(f"[yellow]Warning: {escape(event.message)}[/yellow]")

    def on_job_completed(self, event: JobCompleted):
        job = event.job
        disposition = job.disposition.value if job.disposition else "kept"
        self.console.print(
            f"[green]Conversion complete[/green] - {disposition} \"{escape(str(job.source_path))}\""
        )

    def on_job_failed(self, event: JobFailed):
        # The error itself is reported once by the CLI
        self.console.print(f"[red]Conversion failed[/red] - \"{escape(str(event.job.input_file.path))}\"")

    def on_action_message(self, event: ActionMessage):
        if event.warning:
            self.console.print(f"[yellow]Warning: {escape(event.message)}[/yellow]")
        else:
            self.console.print(escape(event.message))

    def on_missing_binaries(self, event: MissingBinaries):
        for name in event.missing:
            self.console.print(f"[yellow]  missing: {escape(name)}[/yellow]")

    def on_batch_finished(self, event: BatchFinished):
        if event.completed > 1 or event.failed:
            self.console.print(f"Converted {event.completed} file(s), {event.failed} failed")

    def confirm_delete(self, path: Path) -> bool:
        """Asks the operator whether `path` may be deleted. Defaults to no."""
        return Confirm.ask(f"Delete '{escape(str(path))}'?", console=self.console, default=False)
