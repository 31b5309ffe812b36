"""Resolve, generate, build, test and publish the MediaWiki image."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .builder import ImageBuilder, ImageId, ImageReference
from .config import PipelineConfig
from .errors import SmokeTestError
from .generator import HTTP_PORT, ArtifactGenerator, BuildArtifact, ImageLayout
from .publisher import Credentials, Publisher
from .runtime.base import ContainerRuntime
from .runtime.docker import DockerRuntime
from .smoke import SmokeTester, TestOutcome
from .versions import VersionResolver, VersionSet, write_version_file

logger = logging.getLogger(__name__)

console = Console()


@dataclass
class PipelineResult:
    """What a pipeline run produced."""
    version_set: VersionSet
    artifact: BuildArtifact
    image_id: ImageId
    outcome: TestOutcome
    published: list[ImageReference] = field(default_factory=list)
    push_skipped: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome.passed


class Pipeline:
    """Runs every stage in order with one explicit configuration."""

    def __init__(
        self,
        config: PipelineConfig,
        runtime: Optional[ContainerRuntime] = None,
        resolver: Optional[VersionResolver] = None,
        generator: Optional[ArtifactGenerator] = None,
        tester: Optional[SmokeTester] = None,
        publisher: Optional[Publisher] = None,
        console: Console = console,
    ):
        self.config = config
        self.runtime = runtime or DockerRuntime(config.runtime_binary)
        self.resolver = resolver or VersionResolver(config.sources, runtime=self.runtime)
        self.generator = generator or ArtifactGenerator(ImageLayout.from_config(config))
        self.builder = ImageBuilder(self.runtime, config.image_name, timeout=config.build_timeout)
        self.tester = tester or SmokeTester(self.runtime, config.smoke, console=console)
        self.publisher = publisher or Publisher(self.runtime, config.registry, config.image_name)
        self.console = console

    def resolve_versions(self) -> VersionSet:
        version_set = self.resolver.resolve()
        self.console.print(f"[green]✅ Latest PHP version: {version_set.php_version}[/green]")
        self.console.print(
            f"[green]✅ Latest MediaWiki version: {version_set.mediawiki_version} "
            f"(major: {version_set.mediawiki_major_version})[/green]"
        )
        if self.config.output_versions:
            path = write_version_file(version_set, self.config.version_file)
            self.console.print(f"Writing version information to {path}")
        return version_set

    def smoke_test(self, image_id: ImageId) -> TestOutcome:
        """Start a test container, run the checks and always remove it."""
        self.console.print("[cyan]🚀 Running container for testing...[/cyan]")
        container_id = self.runtime.run_container(
            str(image_id.primary),
            ports={self.config.smoke.host_port: HTTP_PORT},
        )
        self.console.print(f"Container ID: {container_id}")
        try:
            return self.tester.test(container_id)
        finally:
            self.console.print("🧹 Cleaning up...")
            removed = self.runtime.remove_container(container_id)
            if not removed.success:
                logger.warning("Failed to remove test container %s: %s", container_id, removed.error)

    def publish(self, image_id: ImageId, version_set: VersionSet) -> tuple[list[ImageReference], Optional[str]]:
        registry = self.config.registry
        if not registry.push_enabled:
            reason = "Auto-push is disabled"
            self.console.print(f"ℹ️ {reason}. Skipping push.")
            self.console.print("   To enable auto-push, use --auto-push or provide registry credentials.")
            return [], reason

        credentials = Credentials.from_registry(registry)
        if credentials is None:
            reason = "Registry credentials not provided"
            self.console.print(f"[yellow]⚠️ {reason}. Not pushing.[/yellow]")
            return [], reason

        self.console.print("🔐 Logging in and pushing...")
        pushed = self.publisher.publish(image_id, version_set, credentials)
        table = Table(title="Pushed tags")
        table.add_column("Image", style="cyan")
        for ref in pushed:
            table.add_row(str(ref))
        self.console.print(table)
        return pushed, None

    def run(self) -> PipelineResult:
        """Run the full pipeline. Raises a PipelineError subclass on failure."""
        self.console.print(Panel(
            "Build, test, and push the Wolfi MediaWiki image",
            title="Wolfi MediaWiki Docker Build Pipeline",
        ))

        try:
            return self._run_stages()
        finally:
            self.resolver.close()
            self.tester.close()

    def _run_stages(self) -> PipelineResult:
        version_set = self.resolve_versions()

        self.console.print("📝 Generating Dockerfile...")
        artifact = self.generator.generate(version_set, self.config.build_dir)
        self.console.print(f"📋 Created build context at {self.config.build_dir}")

        self.console.print(
            f"🔨 Building image with PHP {version_set.php_version} "
            f"and MediaWiki {version_set.mediawiki_version}..."
        )
        image_id = self.builder.build(self.config.build_dir, version_set)
        self.console.print(f"📦 Built image: {image_id}")
        for alias in image_id.references[1:]:
            self.console.print(f"🏷️ Tagged as {alias}")

        outcome = self.smoke_test(image_id)
        if not outcome.passed:
            failed = ", ".join(c.name for c in outcome.failed)
            raise SmokeTestError(f"One or more tests failed ({failed}). Not pushing.", outcome=outcome)
        self.console.print("[green]✅ All tests passed![/green]")

        published, skipped = self.publish(image_id, version_set)
        self.console.print("[bold green]✨ Build process completed successfully![/bold green]")
        return PipelineResult(
            version_set=version_set,
            artifact=artifact,
            image_id=image_id,
            outcome=outcome,
            published=published,
            push_skipped=skipped,
        )
