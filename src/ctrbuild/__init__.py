"""
ctrbuild - Build, package and run Rust programs on the Nintendo 3DS

A cargo wrapper that cross-compiles for armv6k-nintendo-3ds, turns the
resulting ELF into a .3dsx and sends it to a console with 3dslink.
Installed as both `ctrbuild` and `cargo-ctrbuild` (so `cargo ctrbuild run`
works too).
"""
import logging
import os
import sys

__version__ = "0.1.0"

LOG_LEVEL_VAR = 'CTRBUILD_LOG'


def configure_logging(environ):
    """Set the root log level from CTRBUILD_LOG (default: warning)."""
    name = environ.get(LOG_LEVEL_VAR, 'warning').strip().upper()
    level = getattr(logging, name, None)
    if not isinstance(level, int):
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv=None):
    """Main CLI entry point"""
    from ctrbuild.commands.usage import print_usage, show
    from ctrbuild.core import (
        ConsoleLogger,
        RealFileSystemService,
        SystemEnvironmentProvider,
        YamlConfigLoader,
    )
    from ctrbuild.deploy.exceptions import DeploymentError
    from ctrbuild.errors import ArgumentAmbiguity, CtrBuildError
    from ctrbuild.router import create_router
    from ctrbuild.utils.arguments import parse_command_line
    from ctrbuild.utils.config import load_project_config
    from ctrbuild.utils.manifest import apply_manifest, read_cargo_manifest

    configure_logging(os.environ)
    args = sys.argv[1:] if argv is None else list(argv)
    console = ConsoleLogger()

    try:
        invocation = parse_command_line(args)
        if invocation is None:
            print_usage(sys.stderr)
            sys.exit(1)
        if invocation.informational:
            sys.exit(show(invocation))

        filesystem = RealFileSystemService()
        env_provider = SystemEnvironmentProvider()
        project_dir = env_provider.get_cwd()
        config = load_project_config(
            YamlConfigLoader(filesystem),
            filesystem,
            project_dir,
            env_provider.get_environ(),
        )
        config = apply_manifest(config, read_cargo_manifest(filesystem, project_dir))
        # Classify again so ctrbuild.yaml deploy defaults apply
        invocation = parse_command_line(args, config.deploy)

        router = create_router(
            config,
            filesystem=filesystem,
            env_provider=env_provider,
            console=console,
        )
        sys.exit(router.dispatch(invocation))
    except ArgumentAmbiguity as e:
        console.error(str(e))
        print_usage(sys.stderr)
        sys.exit(e.exit_code)
    except DeploymentError as e:
        console.error(f"Deploy failed: {e}")
        sys.exit(e.exit_code)
    except CtrBuildError as e:
        console.error(str(e))
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        sys.exit(1)
