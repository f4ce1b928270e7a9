"""Top-level dispatch of a classified command line.

CommandRouter owns the pipeline components and hands an invocation to the
matching handler in ctrbuild.commands. create_router() wires the production
implementations from ctrbuild.core.
"""
import logging
import sys
import threading
from typing import Callable, Optional

from ctrbuild.build import (
    ArtifactScanner,
    ArtifactSelector,
    BuildConfigurator,
    BuildEnvironment,
    BuildInvoker,
    Packager,
)
from ctrbuild.commands import build, passthrough, run, test, usage
from ctrbuild.core import (
    ConsoleLogger,
    EnvironmentProvider,
    FileSystemService,
    Logger,
    ProcessExecutor,
    RealFileSystemService,
    SubprocessExecutor,
    SystemEnvironmentProvider,
    SystemTimeProvider,
    SystemToolLocator,
    TimeProvider,
    ToolLocator,
    UdpSocketFactory,
)
from ctrbuild.deploy import Deployer, DeviceDeployer, NetloaderTransport
from ctrbuild.utils.arguments import ParsedInvocation, Subcommand
from ctrbuild.utils.config import ProjectConfig

logger = logging.getLogger(__name__)

HANDLERS = {
    Subcommand.BUILD: build,
    Subcommand.RUN: run,
    Subcommand.TEST: test,
    Subcommand.HELP: usage,
    Subcommand.PASSTHROUGH: passthrough,
}


class CommandRouter:
    """
    Routes a ParsedInvocation to its subcommand handler.

    Args:
        configurator: Derives the cross-compilation environment
        invoker: Runs cargo
        selector: Picks the artifact to deploy
        packager_factory: Creates a Packager once the toolchain root is known
        deployer: Sends the .3dsx to the device
        logger: Console output
        stdout: Stream for usage and version text
        cancel: Set to stop a 3dslink server started with --server
    """

    def __init__(
        self,
        configurator: BuildConfigurator,
        invoker: BuildInvoker,
        selector: ArtifactSelector,
        packager_factory: Callable[[BuildEnvironment], Packager],
        deployer: Deployer,
        logger: Logger,
        stdout=None,
        cancel: Optional[threading.Event] = None
    ):
        self.configurator = configurator
        self.invoker = invoker
        self.selector = selector
        self.packager_factory = packager_factory
        self.deployer = deployer
        self.log = logger
        self.stdout = stdout or sys.stdout
        self.cancel = cancel or threading.Event()

    def dispatch(self, invocation: ParsedInvocation) -> int:
        """
        Run the invocation and return the process exit code.

        help/--help/--version never reach the build stage, whatever
        subcommand they were given with.

        Raises:
            CtrBuildError: From whichever stage failed
        """
        if invocation.informational:
            handler = usage
        else:
            handler = HANDLERS[invocation.subcommand]
        logger.debug("Dispatching %s to %s", invocation.subcommand.value, handler.__name__)
        return handler.execute(self, invocation)


def create_router(
    config: ProjectConfig,
    filesystem: Optional[FileSystemService] = None,
    process_executor: Optional[ProcessExecutor] = None,
    env_provider: Optional[EnvironmentProvider] = None,
    time_provider: Optional[TimeProvider] = None,
    tool_locator: Optional[ToolLocator] = None,
    console: Optional[Logger] = None,
    cancel: Optional[threading.Event] = None
) -> CommandRouter:
    """Create a CommandRouter with production dependencies.

    Any dependency can be replaced, which the integration tests use to run
    the whole pipeline against fake tools.
    """
    filesystem = filesystem or RealFileSystemService()
    process_executor = process_executor or SubprocessExecutor()
    env_provider = env_provider or SystemEnvironmentProvider()
    time_provider = time_provider or SystemTimeProvider()
    tool_locator = tool_locator or SystemToolLocator()
    console = console or ConsoleLogger()

    def packager_factory(environment: BuildEnvironment) -> Packager:
        return Packager(
            process_executor=process_executor,
            filesystem=filesystem,
            logger=console,
            package=config.package,
            project_dir=env_provider.get_cwd(),
            toolchain_root=environment.toolchain_root,
            smdhtool=config.tool('smdhtool'),
            tool_3dsx=config.tool('3dsxtool'),
        )

    return CommandRouter(
        configurator=BuildConfigurator(env_provider, filesystem, process_executor),
        invoker=BuildInvoker(
            process_executor=process_executor,
            env_provider=env_provider,
            time_provider=time_provider,
            scanner=ArtifactScanner(filesystem),
            logger=console,
            cargo=config.tool('cargo'),
        ),
        selector=ArtifactSelector(),
        packager_factory=packager_factory,
        deployer=DeviceDeployer(
            transport=NetloaderTransport(UdpSocketFactory(), time_provider),
            process_executor=process_executor,
            time_provider=time_provider,
            tool_locator=tool_locator,
            logger=console,
            link_tool=config.tool('3dslink'),
        ),
        logger=console,
        cancel=cancel,
    )
