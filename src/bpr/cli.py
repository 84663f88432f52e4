from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from dataclasses import fields, is_dataclass
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter

from boxed_py_runner import DockerExecutor, ExecutorConfig, ImageReference, run_code

_CONSOLE = Console(no_color=False)


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="python -m bpr")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {escape(message)}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def _to_jsonable(value: object) -> Any:
    """Convert CLI return values into printable payloads.

    Example:
        ```python
        payload = _to_jsonable(container_info)
        ```
    """
    if not isinstance(value, type) and is_dataclass(value):
        return {field.name: getattr(value, field.name) for field in fields(value)}
    if hasattr(value, "__dict__"):
        return vars(value)
    return value


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for sandboxed code runs and container housekeeping.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m bpr",
        description=(
            "boxed-py-runner CLI\n"
            "Run Python code in a throwaway, resource-limited Docker container.\n"
            "Housekeeping commands only touch containers labelled by boxed-py-runner."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m bpr run script.py\n"
            "  python -m bpr run -c 'print(2 + 2)' --timeout-seconds 10\n"
            "  echo 'print(1)' | python -m bpr run\n"
            "  python -m bpr --image python:3.12-slim pull\n"
            "  python -m bpr list containers\n"
            "  python -m bpr kill container <id>\n\n"
            "Remote Examples:\n"
            "  python -m bpr --docker-host tcp://127.0.0.1:2375 run -c 'print(1)'"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--docker-host",
        help=(
            "Engine address overriding the platform default socket.\n"
            "Examples: unix:///var/run/docker.sock, tcp://host:2375"
        ),
    )
    parser.add_argument(
        "--config",
        help=(
            "TOML file with an [executor] table.\n"
            "Flags given on the command line win over file values."
        ),
    )
    parser.add_argument(
        "--image",
        help="Runtime image as name:tag (default: python:3.9-slim).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log orchestration steps to stderr.",
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Run Python code in a fresh container.",
        description=(
            "Run code from FILE, from -c, or from stdin.\n"
            "Prints the combined stdout/stderr transcript."
        ),
        epilog=(
            "Examples:\n"
            "  python -m bpr run script.py\n"
            "  python -m bpr run -c 'print(2 + 2)' --memory-mb 128 --cpu-shares 256"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("file", nargs="?", help="Python file to run.")
    run_cmd.add_argument("-c", "--code", help="Code passed as a string.")
    run_cmd.add_argument(
        "--timeout-seconds",
        type=float,
        help="Kill the container after this many seconds.",
    )
    run_cmd.add_argument(
        "--memory-mb",
        type=int,
        help="Memory ceiling in MiB (default: 256).",
    )
    run_cmd.add_argument(
        "--cpu-shares",
        type=int,
        help="Relative CPU weight (default: 512).",
    )

    sub.add_parser(
        "pull",
        help="Make sure the runtime image is present locally.",
        description="Check for the runtime image and pull it when absent.",
        formatter_class=_HELP_FORMATTER,
    )

    list_cmd = sub.add_parser(
        "list",
        help="List labelled execution containers.",
        description="List containers created and labelled by boxed-py-runner.",
        formatter_class=_HELP_FORMATTER,
    )
    list_cmd_sub = list_cmd.add_subparsers(
        dest="resource",
        required=True,
        parser_class=_RichArgumentParser,
    )
    list_cmd_sub.add_parser(
        "containers",
        help="List labelled containers.",
        description=(
            "Show labelled containers in every state.\n"
            "Includes id, name, image, state, and status."
        ),
        formatter_class=_HELP_FORMATTER,
    )

    kill_cmd = sub.add_parser(
        "kill",
        help="Force kill a runaway execution container.",
        description=(
            "Kill commands operate only on labelled containers.\n"
            "The engine removes the container once it exits."
        ),
        epilog=(
            "Examples:\n"
            "  python -m bpr kill container abc123"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    kill_cmd_sub = kill_cmd.add_subparsers(
        dest="resource",
        required=True,
        parser_class=_RichArgumentParser,
    )
    kill_container = kill_cmd_sub.add_parser(
        "container",
        help="Force kill one labelled container by id.",
        description="Force kill a labelled container immediately.",
        formatter_class=_HELP_FORMATTER,
    )
    kill_container.add_argument("container_id")

    return parser


def build_config(args: argparse.Namespace) -> ExecutorConfig:
    """Merge the optional config file with command-line overrides.

    Example:
        ```python
        config = build_config(args)
        ```
    """
    raw: dict[str, Any] = {}
    if args.config:
        base = ExecutorConfig.from_file(args.config)
        raw = {
            "image": base.image.reference,
            "memory_limit_bytes": base.memory_limit_bytes,
            "cpu_shares": base.cpu_shares,
            "script_path": base.script_path,
            "interpreter": list(base.interpreter),
            "name_prefix": base.name_prefix,
            "mount_mode": base.mount_mode,
            "timeout_seconds": base.timeout_seconds,
            "scratch_dir": base.scratch_dir,
        }
    if args.image:
        raw["image"] = ImageReference.parse(args.image).reference
    if getattr(args, "memory_mb", None) is not None:
        raw["memory_limit_bytes"] = args.memory_mb * 1024 * 1024
    if getattr(args, "cpu_shares", None) is not None:
        raw["cpu_shares"] = args.cpu_shares
    if getattr(args, "timeout_seconds", None) is not None:
        raw["timeout_seconds"] = args.timeout_seconds
    return ExecutorConfig.from_mapping(raw)


def _print_progress(message: str) -> None:
    """Render one image pull progress line.

    Example:
        ```python
        _print_progress("Pulling fs layer")
        ```
    """
    _CONSOLE.print(f"[grey50]{escape(message)}[/grey50]")


def build_executor(args: argparse.Namespace) -> DockerExecutor:
    """Create a DockerExecutor from global CLI flags.

    Example:
        ```python
        executor = build_executor(args)
        ```
    """
    return DockerExecutor(
        build_config(args),
        docker_host=args.docker_host,
        progress=_print_progress,
    )


def _configure_logging(verbose: bool) -> None:
    """Route library logging through Rich when verbose output is requested.

    Example:
        ```python
        _configure_logging(True)
        ```
    """
    if not verbose:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _read_code(args: argparse.Namespace) -> str:
    """Resolve the code to run from -c, a file, or stdin.

    Example:
        ```python
        code = _read_code(args)
        ```
    """
    if args.code is not None and args.file is not None:
        raise ValueError("Provide either FILE or -c/--code, not both")
    if args.code is not None:
        return str(args.code)
    if args.file is not None:
        return Path(args.file).read_text(encoding="utf-8")
    return sys.stdin.read()


def _print_containers(rows: list[dict[str, Any]]) -> None:
    """Render labelled containers in a rich table.

    Example:
        ```python
        _print_containers([{"id": "abc", "name": "python-executor-1"}])
        ```
    """
    table = Table(title="Execution Containers")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Image")
    table.add_column("State")
    table.add_column("Status")
    for row in rows:
        table.add_row(row["id"], row["name"], row["image"], row["state"], row["status"])
    _CONSOLE.print(table)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `bpr` CLI command handler.

    Example:
        ```python
        code = main(["run", "-c", "print(2 + 2)"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    _configure_logging(args.verbose)
    try:
        executor = build_executor(args)
    except ValueError as exc:
        parser.error(str(exc))

    if args.command == "run":
        try:
            code = _read_code(args)
        except (ValueError, OSError) as exc:
            parser.error(str(exc))
        result = run_code(code, engine=executor)
        if result.ok:
            _CONSOLE.print(
                Panel(
                    escape(result.output),
                    title="[bold green]Execution Result[/bold green]",
                    border_style="green",
                )
            )
            return 0
        _CONSOLE.print(
            Panel(
                escape(result.text),
                title=f"[bold red]Execution Failed ({result.error_kind})[/bold red]",
                border_style="red",
            )
        )
        return 1
    if args.command == "pull":
        reference = executor.config.image.reference
        with _CONSOLE.status(f"Checking image {reference}..."):
            pulled = executor.ensure_runtime_image()
        summary = {"image": reference, "pulled": pulled}
        _CONSOLE.print(Panel.fit(Pretty(summary), title="Runtime Image", border_style="green"))
        return 0
    if args.command == "list" and args.resource == "containers":
        rows = [_to_jsonable(c) for c in executor.list_containers()]
        _print_containers(rows)
        return 0
    if args.command == "kill" and args.resource == "container":
        try:
            executor.kill_container(args.container_id)
        except ValueError as exc:
            _CONSOLE.print(Panel.fit(escape(str(exc)), style="bold red"))
            return 1
        _CONSOLE.print(Panel.fit(f"Killed container {args.container_id}", style="bold yellow"))
        return 0

    parser.error("Unhandled command")
