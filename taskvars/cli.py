"""
Task workflow runner CLI

Runs a task workflow defined in a YAML file against a fresh variable store.

Usage:
    taskvars workflow.yml
    taskvars workflow.yml --policy throw_error --var Env.Region=eu --show-vars
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from .config import WORKFLOW_TYPE, WORKFLOW_VERSION, load_config, validate_workflow_file
from .display import get_display
from .errors import ConfigError, MalformedExpressionError
from .paths import parse_path
from .store import MissingVariablePolicy
from .workflow import WorkflowRunner

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_logging(level: str) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def parse_var_overrides(values: Optional[List[str]]) -> Dict[str, Any]:
    """Parse repeated --var Scope.Key=VALUE arguments.

    Raises:
        ValueError: If an argument has no '=' or a malformed name
    """
    overrides: Dict[str, Any] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        name = name.strip()
        if not sep or not name:
            raise ValueError(f"Expected Scope.Key=VALUE, got '{item}'")
        try:
            parse_path(name)
        except MalformedExpressionError as e:
            raise ValueError(f"Invalid variable name '{name}': {e}") from e
        overrides[name] = value
    return overrides


def _print_error_panel(title: str, message: str) -> None:
    console = get_display().console
    console.print()
    console.print(
        Panel(
            Text.from_markup(message),
            title=f"[bold red]{title}[/bold red]",
            border_style="red",
            box=box.ROUNDED,
            expand=False,
        )
    )
    console.print()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run task workflows against a scoped variable store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
    taskvars workflow.yml
    taskvars workflow.yml --policy throw_error
    taskvars workflow.yml --var Env.Region=eu --var Env.Limit=10 --show-vars

Workflow files:
    - Required: type: {WORKFLOW_TYPE}
    - Required: version: {WORKFLOW_VERSION}
        """,
    )
    parser.add_argument("workflow_file", help="Path to the workflow YAML file")
    parser.add_argument(
        "--policy",
        choices=[p.value for p in MissingVariablePolicy],
        default=None,
        help="Override the workflow's missing_variables policy",
    )
    parser.add_argument(
        "--var",
        dest="vars",
        action="append",
        metavar="Scope.Key=VALUE",
        help="Set a workflow variable (repeatable, overrides 'vars')",
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--show-vars",
        action="store_true",
        default=False,
        help="Print stored variables after the run",
    )

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    console = get_display().console
    workflow_file = Path(args.workflow_file).resolve()

    is_valid, error_msg = validate_workflow_file(workflow_file)
    if not is_valid:
        _print_error_panel(
            "Error",
            f"[bold red]Invalid workflow file![/bold red]\n\n"
            f"[white]File:[/white] [cyan]{escape(str(workflow_file))}[/cyan]\n\n"
            f"[white]Error:[/white] {escape(error_msg or '')}\n\n"
            f"[white]Required fields:[/white]\n"
            f"  [cyan]type: {WORKFLOW_TYPE}[/cyan]\n"
            f"  [cyan]version: {WORKFLOW_VERSION}[/cyan]",
        )
        sys.exit(1)

    try:
        config = load_config(workflow_file)
        overrides = parse_var_overrides(args.vars)
    except yaml.YAMLError as e:
        console.print(f"[bold red]Invalid YAML in workflow file:[/bold red]\n  {escape(str(e))}")
        sys.exit(1)
    except (ConfigError, ValueError) as e:
        _print_error_panel("Error", f"[bold red]{escape(str(e))}[/bold red]")
        sys.exit(1)

    if args.policy:
        config.missing_variables = MissingVariablePolicy.parse(args.policy)
    config.vars.update(overrides)

    runner = WorkflowRunner(config, base_path=workflow_file.parent)
    result = runner.run()

    if args.show_vars:
        get_display().print_variables(result.variables)

    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
