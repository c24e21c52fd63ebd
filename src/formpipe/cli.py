"""formpipe CLI for running and inspecting the submission pipeline - Tyro implementation."""

import json
import logging
import os
import shutil
import sys
from builtins import print as builtin_print
from pathlib import Path
from typing import Annotated, Any

import attrs
import tyro
import yaml
from rich import print
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from formpipe.config import CONFIG_FILENAME, FormPipeConfig, TrustPolicy, get_config
from formpipe.errors import ConfigurationError
from formpipe.http.proxy import TrustedProxyResolver
from formpipe.pipeline.envelope import PipelineResult
from formpipe.pipeline.executor import PipelineExecutor, default_resolver
from formpipe.pipeline.record import SubmissionRecord
from formpipe.utils import get_templates_dir, parse_header_args


# Subcommand definitions using attrs
@attrs.define
class Submit:
    """Run the configured pipeline on a submission file."""

    file: Annotated[Path, tyro.conf.Positional]
    """YAML or JSON file with name, email, subject, message, phone and extra fields."""

    remote_addr: Annotated[str | None, tyro.conf.arg(aliases=["-r"])] = None
    """Address of the direct peer."""

    header: Annotated[list[str], tyro.conf.arg(aliases=["-H"])] = attrs.field(factory=list)
    """Request header as 'Name: value' (repeatable)."""

    body_field: Annotated[list[str], tyro.conf.arg(aliases=["-b"])] = attrs.field(factory=list)
    """Extra form field rendered into the message body (repeatable)."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Print the result envelope as JSON."""


@attrs.define
class ResolveIp:
    """Resolve the client address for a peer and set of headers."""

    remote_addr: Annotated[str, tyro.conf.Positional]
    """Address of the direct peer."""

    header: Annotated[list[str], tyro.conf.arg(aliases=["-H"])] = attrs.field(factory=list)
    """Request header as 'Name: value' (repeatable)."""

    trusted: Annotated[list[str], tyro.conf.arg(aliases=["-t"])] = attrs.field(factory=list)
    """Additional trusted proxy CIDR (repeatable)."""

    allow_private: bool = False
    """Accept private and reserved client addresses."""


@attrs.define
class Codes:
    """List known result codes and their messages."""

    json: Annotated[bool, tyro.conf.arg(aliases=["-j"])] = False
    """Print as JSON."""


@attrs.define
class Install:
    """Install formpipe configuration files."""

    force: bool = False
    """Overwrite existing configuration."""


# Type alias for all subcommands
Command = (
    Annotated[Submit, tyro.conf.subcommand(name="submit")]
    | Annotated[ResolveIp, tyro.conf.subcommand(name="resolve-ip")]
    | Annotated[Codes, tyro.conf.subcommand(name="codes")]
    | Annotated[Install, tyro.conf.subcommand(name="install")]
)


def setup_logging() -> None:
    """Configure logging with 100-character text width."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message).100s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_config(config_dir: Path | None) -> FormPipeConfig:
    """Load formpipe.yaml from ``config_dir``, or follow normal discovery."""
    if config_dir is not None:
        return FormPipeConfig.from_yaml(config_dir / CONFIG_FILENAME)
    return get_config()


def install_config(config_dir: Path, force: bool = False) -> None:
    """Install formpipe configuration files.

    Args:
        config_dir: Directory to install configuration files to
        force: Whether to overwrite existing configuration
    """
    if config_dir.exists() and not force:
        print(f"Configuration directory {config_dir} already exists.")
        print("Use --force to overwrite existing configuration.")
        sys.exit(1)

    config_dir.mkdir(parents=True, exist_ok=True)
    print(f"Creating configuration directory: {config_dir}")

    try:
        templates_dir = get_templates_dir()
    except RuntimeError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    src = templates_dir / CONFIG_FILENAME
    dst = config_dir / CONFIG_FILENAME
    if not src.exists():
        print(f"  Warning: Template {CONFIG_FILENAME} not found", file=sys.stderr)
    elif dst.exists() and not force:
        print(f"  Skipping {CONFIG_FILENAME} (already exists)")
    else:
        shutil.copy2(src, dst)
        print(f"  Copied {CONFIG_FILENAME}")

    print(f"\nInstallation complete! Configuration installed to: {config_dir}")
    print("\nNext steps:")
    print(f"  1. Edit {dst} to configure SMTP, validators and hooks")
    print("  2. Try it with: formpipe submit message.yaml")


def load_submission(path: Path) -> dict[str, Any]:
    """Read a submission file (YAML is a superset of JSON).

    Raises:
        ValueError: If the file does not contain a mapping
    """
    with path.open() as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Submission file must contain a mapping, got {type(data).__name__}")
    return data


def submit(
    config: FormPipeConfig,
    path: Path,
    *,
    remote_addr: str | None = None,
    headers: dict[str, str] | None = None,
    body_fields: list[str] | None = None,
) -> PipelineResult:
    """Run one submission file through a pipeline built from ``config``."""
    data = load_submission(path)
    record = SubmissionRecord.from_form(data, body_fields=body_fields)
    extra_meta = data.get("meta")
    if isinstance(extra_meta, dict):
        record.meta.update(extra_meta)

    executor = PipelineExecutor.from_config(config)
    executor.with_request(headers or {}, remote_addr, body=data)
    return executor.process(record)


def show_result(result: PipelineResult, as_json: bool = False) -> None:
    """Print a result envelope as JSON or as a rich panel."""
    if as_json:
        builtin_print(json.dumps(result.to_dict(), indent=2, default=str))
        return

    console = Console()
    table = Table(show_header=False, show_lines=True)
    table.add_column("Key", style="white", width=12)
    table.add_column("Value", style="yellow")
    table.add_row("ok", "[green]true[/green]" if result.ok else "[red]false[/red]")
    table.add_row("code", result.code)
    table.add_row("message", result.message)
    table.add_row("meta", json.dumps(result.meta, indent=2, default=str))

    border = "green" if result.ok else "red"
    console.print(Panel(table, title="[bold]formpipe Result[/bold]", border_style=border))


def resolve_ip(
    config: FormPipeConfig,
    remote_addr: str,
    headers: dict[str, str],
    *,
    trusted: list[str] | None = None,
    allow_private: bool = False,
) -> str | None:
    """Resolve a client address using the configured trust policy plus overrides."""
    policy = config.trusted_proxy
    overrides: dict[str, Any] = {}
    if trusted:
        overrides["trusted_proxies"] = (*policy.trusted_proxies, *trusted)
    if allow_private:
        overrides["allow_private"] = True
    if overrides:
        policy = TrustPolicy(**{**policy.model_dump(), **overrides})
    return TrustedProxyResolver(policy).resolve(headers, remote_addr)


def show_codes(config: FormPipeConfig, as_json: bool = False) -> None:
    """Print every known code with its message and HTTP hint."""
    resolver = default_resolver()
    if config.messages:
        resolver.extend(config.messages)

    rows = [(code, resolver.describe(code)) for code in sorted(resolver.codes())]
    if as_json:
        builtin_print(json.dumps({code: d.model_dump() for code, d in rows}, indent=2))
        return

    table = Table(title="Result codes")
    table.add_column("Code", style="cyan")
    table.add_column("HTTP", style="magenta", justify="right")
    table.add_column("Message", style="white")
    for code, descriptor in rows:
        table.add_row(code, str(descriptor.http or ""), descriptor.message)
    Console().print(table)


def main(
    cmd: Annotated[Command, tyro.conf.arg(name="")],
    *,
    config_dir: Annotated[Path | None, tyro.conf.arg(help="Configuration directory")] = None,
) -> None:
    """formpipe - form submission pipeline.

    Validates contact-form submissions through configurable hooks and
    validators and delivers them by SMTP or sendmail.
    """
    setup_logging()

    if isinstance(cmd, Install):
        if config_dir is None:
            env_dir = os.environ.get("FORMPIPE_CONFIG_DIR")
            config_dir = Path(env_dir) if env_dir else Path.home() / ".formpipe"
        install_config(config_dir, force=cmd.force)
        return

    try:
        config = load_config(config_dir)
    except (ConfigurationError, ValueError, yaml.YAMLError) as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        sys.exit(1)

    if config.debug:
        logging.getLogger("formpipe").setLevel(logging.DEBUG)

    if isinstance(cmd, Submit):
        try:
            result = submit(
                config,
                cmd.file,
                remote_addr=cmd.remote_addr,
                headers=parse_header_args(cmd.header),
                body_fields=cmd.body_field,
            )
        except (OSError, ValueError, yaml.YAMLError) as e:
            print(f"Error reading submission: {e}", file=sys.stderr)
            sys.exit(1)
        except ConfigurationError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            sys.exit(1)
        show_result(result, as_json=cmd.json)
        sys.exit(0 if result.ok else 1)

    elif isinstance(cmd, ResolveIp):
        ip = resolve_ip(
            config,
            cmd.remote_addr,
            parse_header_args(cmd.header),
            trusted=cmd.trusted,
            allow_private=cmd.allow_private,
        )
        if ip is None:
            print("[red]No valid client address[/red]")
            sys.exit(1)
        builtin_print(ip)

    elif isinstance(cmd, Codes):
        show_codes(config, as_json=cmd.json)


def entry_point() -> None:
    """Entry point for the formpipe command."""
    tyro.cli(main)


if __name__ == "__main__":
    entry_point()
