"""Smoke tests run against a container started from the freshly built image."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
from rich.console import Console

from .config import SmokeTestConfig
from .generator import INFO_MARKER, INFO_PATH, MAIN_PAGE_PATH, SETUP_MARKERS, SETUP_PATH
from .retry import Abort, retry
from .runtime.base import ContainerRuntime

logger = logging.getLogger(__name__)

console = Console()


@dataclass
class CheckResult:
    """Outcome of one smoke check."""
    name: str
    passed: bool
    attempts: int = 0
    message: str = ""
    diagnostics: str = ""


@dataclass
class TestOutcome:
    """All smoke check results; passes only if every check passed."""
    checks: list[CheckResult] = field(default_factory=list)

    __test__ = False  # not a pytest class

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(c.passed for c in self.checks)

    @property
    def failed(self) -> list[CheckResult]:
        return [c for c in self.checks if not c.passed]


class SmokeTester:
    """Polls a running container for reachability, health and the setup page."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        config: Optional[SmokeTestConfig] = None,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        console: Console = console,
    ):
        self.runtime = runtime
        self.config = config or SmokeTestConfig()
        self.client = client or httpx.Client(timeout=self.config.http_timeout)
        self._owns_client = client is None
        self.sleep = sleep
        self.console = console

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    @property
    def base_url(self) -> str:
        return f"http://localhost:{self.config.host_port}"

    def _progress(self, label: str) -> Callable[[int, int], None]:
        def report(attempt: int, total: int) -> None:
            self.console.print(f"  {label} attempt {attempt} of {total}")
        return report

    def _fetch(self, path: str) -> Optional[str]:
        try:
            return self.client.get(self.base_url + path, timeout=self.config.http_timeout).text
        except httpx.HTTPError as e:
            logger.debug("GET %s failed: %s", path, e)
            return None

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def ping_check(self, container_id: str) -> CheckResult:
        """Loopback ping inside the container."""
        self.console.print("[cyan]🔄 Testing container ping...[/cyan]")

        def responds(_attempt: int) -> bool:
            return self.runtime.exec(container_id, ["ping", "-c", "1", "localhost"]).success

        result = retry(
            self.config.ping_attempts,
            self.config.ping_interval,
            responds,
            sleep=self.sleep,
            on_attempt=self._progress("Ping"),
        )
        if result.success:
            self.console.print("[green]✅ Ping test successful[/green]")
            return CheckResult("ping", True, result.attempts, "Ping test successful")

        message = f"Ping test failed after {result.attempts} attempts"
        self.console.print(f"[red]❌ {message}[/red]")
        return CheckResult("ping", False, result.attempts, message, self.runtime.logs(container_id))

    def health_check(self, container_id: str) -> CheckResult:
        """Wait for the runtime to report the container healthy."""
        self.console.print("[cyan]🔄 Waiting for container to become healthy...[/cyan]")

        def healthy(_attempt: int) -> bool:
            state = self.runtime.inspect(container_id)
            if not state.running:
                raise Abort(f"container is not running (status: {state.status})")
            logger.debug("Container health: %s", state.health)
            return state.health == "healthy"

        result = retry(
            self.config.health_attempts,
            self.config.health_interval,
            healthy,
            sleep=self.sleep,
            on_attempt=self._progress("Health check"),
        )
        if result.success:
            self.console.print("[green]✅ Container is healthy![/green]")
            return CheckResult("health", True, result.attempts, "Container is healthy")

        if result.aborted:
            message = f"Container failed to start or crashed: {result.reason}"
        else:
            message = "Container never became healthy within the allotted time"
        self.console.print(f"[red]❌ {message}[/red]")
        return CheckResult("health", False, result.attempts, message, self.runtime.logs(container_id))

    def setup_page_check(self, container_id: str) -> CheckResult:
        """Wait for the MediaWiki installer to answer through the published port."""
        self.console.print("[cyan]🔄 Checking MediaWiki setup page...[/cyan]")
        last: dict[str, Optional[str]] = {"body": None}

        def setup_page_ready(_attempt: int) -> bool:
            body = self._fetch(SETUP_PATH)
            last["body"] = body
            if body and SETUP_MARKERS[0] in body:
                self.console.print("[green]✅ MediaWiki environment check successful[/green]")
                return True
            if body and SETUP_MARKERS[1] in body:
                self.console.print("[green]✅ MediaWiki page loaded, configuration page detected[/green]")
                return True

            # Informational only; neither page satisfies the check
            main_page = self._fetch(MAIN_PAGE_PATH)
            if main_page and "MediaWiki" in main_page:
                self.console.print("  ℹ️ MediaWiki main page is reachable, waiting for the setup page...")
            info_page = self._fetch(INFO_PATH)
            if info_page and INFO_MARKER in info_page:
                self.console.print("  ℹ️ PHP info page is accessible, waiting for MediaWiki setup...")
            else:
                self.console.print("  [yellow]⚠️ PHP info page is not accessible yet[/yellow]")
            return False

        result = retry(
            self.config.setup_attempts,
            self.config.setup_interval,
            setup_page_ready,
            sleep=self.sleep,
            on_attempt=self._progress("Setup page"),
        )
        if result.success:
            return CheckResult("setup", True, result.attempts, "MediaWiki setup page is reachable")

        message = f"MediaWiki setup check failed after {result.attempts} attempts"
        self.console.print(f"[red]❌ {message}[/red]")
        return CheckResult("setup", False, result.attempts, message, self._setup_diagnostics(container_id, last["body"]))

    def _setup_diagnostics(self, container_id: str, last_body: Optional[str]) -> str:
        lines = []
        if last_body:
            lines.append("Got a response from the server, but it doesn't match expected patterns")
        else:
            lines.append("No response from the setup page")

        if self._fetch("/") is not None:
            lines.append(f"✓ Web server is responding at {self.base_url}/")
        else:
            lines.append(f"✗ Web server is not responding at {self.base_url}/")

        lines.append(f"Container logs (last {self.config.log_tail} lines):")
        lines.append(self.runtime.logs(container_id, tail=self.config.log_tail).rstrip())
        return "\n".join(lines)

    # ------------------------------------------------------------------

    def test(self, container_id: str) -> TestOutcome:
        """Run every check; each one runs even if an earlier one failed."""
        self.console.print("[bold]🧪 Running tests...[/bold]")
        outcome = TestOutcome(checks=[
            self.ping_check(container_id),
            self.health_check(container_id),
            self.setup_page_check(container_id),
        ])
        for check in outcome.failed:
            logger.error("Smoke check %s failed: %s", check.name, check.message)
            if check.diagnostics:
                self.console.print(check.diagnostics, markup=False, highlight=False)
        return outcome
