"""CLI for the wolfi-mediawiki image build pipeline."""

import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import load_config
from .errors import PipelineError
from .generator import ArtifactGenerator, ImageLayout
from .log_config import setup_logging
from .pipeline import Pipeline
from .runtime.docker import DockerRuntime
from .versions import VersionSet, read_version_file, resolve_versions, write_version_file


console = Console()


def _print_versions(version_set: VersionSet) -> None:
    table = Table(title="Resolved versions")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in version_set.to_env().items():
        table.add_row(key, value)
    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="wolfi-mediawiki")
def cli():
    """Build, test and publish a MediaWiki image on Wolfi."""
    pass


@cli.command()
@click.option("--username", "-u", help="Registry username (default: $DOCKER_USERNAME)")
@click.option("--token", "-t", help="Registry token (default: $DOCKER_TOKEN)")
@click.option("--auto-push", is_flag=True, help="Push after tests pass")
@click.option("--output-versions", is_flag=True, help="Write version_info.env")
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--build-dir", "-b", type=click.Path(), help="Build context directory")
@click.option("--version-file", type=click.Path(), help="Where --output-versions writes")
@click.option("--image-name", help="Local image name")
@click.option("--registry", "-r", help="Registry host (default: Docker Hub)")
@click.option("--namespace", "-n", help="Registry namespace (default: username)")
@click.option("--port", "-p", type=int, help="Host port for the test container")
@click.option("--strict-extensions", is_flag=True, help="Fail the build on a missing PHP extension")
@click.option("--verbose", "-v", is_flag=True, help="Log details to stderr")
def build(
    username: Optional[str],
    token: Optional[str],
    auto_push: bool,
    output_versions: bool,
    config_path: Optional[str],
    build_dir: Optional[str],
    version_file: Optional[str],
    image_name: Optional[str],
    registry: Optional[str],
    namespace: Optional[str],
    port: Optional[int],
    strict_extensions: bool,
    verbose: bool,
):
    """Run the full resolve, generate, build, test and push pipeline."""
    log_path: Optional[Path] = None
    try:
        log_path = setup_logging(verbose=verbose)
        config = load_config(config_path).with_overrides(
            username=username,
            token=token,
            auto_push=True if auto_push else None,
            url=registry,
            namespace=namespace,
            output_versions=True if output_versions else None,
            strict_extensions=True if strict_extensions else None,
            build_dir=Path(build_dir).resolve() if build_dir else None,
            version_file=Path(version_file).resolve() if version_file else None,
            image_name=image_name,
        )
        if port is not None:
            config = replace(config, smoke=replace(config.smoke, host_port=port))

        Pipeline(config, console=console).run()
    except PipelineError as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        if log_path is not None:
            console.print(f"[dim]Log: {log_path}[/dim]")
        sys.exit(1)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--output", "-o", type=click.Path(), help="Write KEY=VALUE file")
def versions(config_path: Optional[str], output: Optional[str]):
    """Resolve the latest PHP and MediaWiki versions."""
    try:
        config = load_config(config_path)
        version_set = resolve_versions(config.sources, runtime=DockerRuntime(config.runtime_binary))
        _print_versions(version_set)
        if output:
            path = write_version_file(version_set, Path(output))
            console.print(f"[green]✓ Wrote {path}[/green]")
    except (PipelineError, OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.option("--config", "config_path", type=click.Path(exists=True), help="YAML config file")
@click.option("--build-dir", "-b", type=click.Path(), help="Build context directory")
@click.option("--php", "php_version", help="PHP version (skips lookup)")
@click.option("--mediawiki", "mediawiki_version", help="MediaWiki X.Y.Z (skips lookup)")
@click.option("--versions-file", type=click.Path(exists=True), help="Read versions from a KEY=VALUE file")
@click.option("--strict-extensions", is_flag=True, help="Fail the build on a missing PHP extension")
def generate(
    config_path: Optional[str],
    build_dir: Optional[str],
    php_version: Optional[str],
    mediawiki_version: Optional[str],
    versions_file: Optional[str],
    strict_extensions: bool,
):
    """Write the Dockerfile and its scripts without building."""
    try:
        config = load_config(config_path).with_overrides(
            build_dir=Path(build_dir).resolve() if build_dir else None,
            strict_extensions=True if strict_extensions else None,
        )

        if versions_file:
            version_set = read_version_file(Path(versions_file))
        elif php_version and mediawiki_version:
            version_set = VersionSet.from_mediawiki(php_version, mediawiki_version)
        else:
            sources = replace(
                config.sources,
                php_version=php_version or config.sources.php_version,
                mediawiki_version=mediawiki_version or config.sources.mediawiki_version,
            )
            version_set = resolve_versions(sources, runtime=DockerRuntime(config.runtime_binary))

        artifact = ArtifactGenerator(ImageLayout.from_config(config)).generate(version_set, config.build_dir)
        _print_versions(version_set)
        for name in artifact.files:
            console.print(f"  [green]✓[/green] {config.build_dir / name}")
    except (PipelineError, OSError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def main():
    load_dotenv(Path.cwd() / ".env", override=False)
    cli()


if __name__ == "__main__":
    main()
