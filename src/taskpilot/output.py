"""Output formatting for the TaskPilot CLI.

Each command reports through an OutputContext: rich markup on the console
for people, or exactly one JSON document on stdout with ``--json``.
"""

import json
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.markup import escape

from .models import InstanceRole


@dataclass
class OutputContext:
    """Context for output formatting."""

    console: Console
    json_mode: bool = False

    def print_json(self, data: dict[str, Any]) -> None:
        """Print JSON data."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))

    def field(self, label: str, value: Any) -> None:
        """Print one ``Label: value`` line of a text report."""
        if not self.json_mode:
            self.console.print(f"[bold]{label}:[/bold] {value}")

    def result(self, data: dict[str, Any], message: str = "") -> None:
        """Print result in appropriate format."""
        if self.json_mode:
            self.print_json(data)
        elif message:
            self.console.print(message)

    def role(self, role: InstanceRole, port: int, proxy_port: int | None = None) -> None:
        """Report the role this process served in once it has stopped."""
        data: dict[str, Any] = {"role": role.value, "port": port, "stopped": True}
        if proxy_port is not None:
            data["proxy_port"] = proxy_port
        via = f" via proxy port {proxy_port}" if proxy_port is not None else ""
        self.result(data, f"Stopped {role.value} instance for port {port}{via}")

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print error in appropriate format."""
        if self.json_mode:
            self.print_json({"error": message, **(data or {})})
        else:
            self.console.print(f"[red]Error:[/red] {escape(message)}")

    def success(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print success message in appropriate format."""
        if self.json_mode:
            self.print_json({"success": message, **(data or {})})
        else:
            self.console.print(f"[green]{message}[/green]")
