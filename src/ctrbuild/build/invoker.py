"""Runs cargo for the 3DS target and collects what it produced."""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from ctrbuild.build.artifacts import ArtifactKind, ArtifactScanner, BuildArtifact, output_dir
from ctrbuild.build.environment import BuildEnvironment
from ctrbuild.core.protocols import (
    EnvironmentProvider,
    Logger,
    ProcessExecutor,
    TimeProvider,
)
from ctrbuild.errors import BuildFailed

logger = logging.getLogger(__name__)

# Filesystems with coarse timestamps can date a fresh file before the build began
MTIME_SLACK_SECONDS = 2.0


@dataclass
class BuildResult:
    exit_code: int
    artifacts: List[BuildArtifact] = field(default_factory=list)


class BuildInvoker:
    """Runs the external build system with the cross-compilation environment.

    Output is not captured: the child inherits our stdio so cargo's progress
    and diagnostics reach the terminal as they are produced.

    Args:
        process_executor: Spawns cargo
        env_provider: Base environment and working directory
        time_provider: Build start timestamp for artifact freshness
        scanner: Finds produced executables
        logger: Console output
        cargo: cargo executable (CARGO from the environment takes precedence)
    """

    def __init__(
        self,
        process_executor: ProcessExecutor,
        env_provider: EnvironmentProvider,
        time_provider: TimeProvider,
        scanner: ArtifactScanner,
        logger: Logger,
        cargo: str = 'cargo'
    ):
        self.process = process_executor
        self.env = env_provider
        self.time = time_provider
        self.scanner = scanner
        self.log = logger
        self.cargo = cargo

    def build_command(
        self,
        cargo_subcommand: str,
        environment: BuildEnvironment,
        build_args: Sequence[str]
    ) -> List[str]:
        """Create the cargo command line, but don't execute it."""
        cargo = self.env.get_environ().get('CARGO') or self.cargo
        cmd = [cargo]
        if environment.build_std:
            # Must precede the subcommand so it lands before any `--`
            cmd.extend(['-Z', 'build-std'])
        cmd.extend([cargo_subcommand, '--target', environment.target_triple])
        cmd.extend(build_args)
        return cmd

    def invoke(
        self,
        cargo_subcommand: str,
        environment: BuildEnvironment,
        build_args: Sequence[str],
        kinds: Iterable[ArtifactKind] = (ArtifactKind.BINARY, ArtifactKind.EXAMPLE)
    ) -> BuildResult:
        """Run cargo and scan for artifacts.

        Args:
            cargo_subcommand: 'build' or 'test'
            environment: From BuildConfigurator.configure()
            build_args: Passthrough args, appended after --target
            kinds: Artifact kinds this invocation is interested in

        Returns:
            BuildResult with exit_code 0 and the discovered artifacts

        Raises:
            BuildFailed: If cargo exits non-zero (no artifact scan happens)
        """
        base_environ = self.env.get_environ()
        cmd = self.build_command(cargo_subcommand, environment, build_args)
        self.log.debug(f"Running: {' '.join(cmd)}")

        started = self.time.current_time()
        handle = self.process.popen(cmd, env=environment.environ(base_environ))
        exit_code = handle.wait()

        if exit_code != 0:
            raise BuildFailed(exit_code)

        profile_dir = output_dir(
            self.env.get_cwd(), base_environ, environment.target_triple, build_args
        )
        artifacts = self.scanner.scan(profile_dir, kinds, since=started - MTIME_SLACK_SECONDS)
        logger.debug("Found %d artifact(s) in %s", len(artifacts), profile_dir)
        return BuildResult(exit_code=exit_code, artifacts=artifacts)

    def passthrough(self, args: Sequence[str]) -> int:
        """Run `cargo <args...>` unmodified and return its exit code."""
        cargo = self.env.get_environ().get('CARGO') or self.cargo
        cmd = [cargo] + list(args)
        self.log.debug(f"Running: {' '.join(cmd)}")
        return self.process.popen(cmd).wait()
