"""Command-line classification.

A ctrbuild command line carries three argument groups that all look alike:

    ctrbuild run -a 10.0.0.5 --release --features foo -- -- arg1 arg2
                 ^^^^^^^^^^^ ^^^^^^^^^^^^^^^^^^^^^^^^       ^^^^^^^^^
                 ours        cargo's                        the executable's

Cargo's own flag set cannot be enumerated, so the split is found by boundary
detection: our flags are only recognized in the leading prefix, which ends at
the first token we do not recognize or at the first ``--``. After that, a
``--`` separates cargo args from executable args.
"""

import argparse
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ctrbuild.deploy.factory import parse_address
from ctrbuild.errors import ArgumentAmbiguity

SEPARATOR = '--'
CARGO_SUBCOMMAND_NAME = 'ctrbuild'
DEFAULT_RETRIES = 10


class Subcommand(Enum):
    BUILD = 'build'
    RUN = 'run'
    TEST = 'test'
    HELP = 'help'
    PASSTHROUGH = 'passthrough'


class TokenClass(Enum):
    ORCHESTRATOR = 'orchestrator'
    BOUNDARY = 'boundary'
    UNCLASSIFIED = 'unclassified'


@dataclass(frozen=True)
class DeployOptions:
    """Options for the device deploy stage.

    Attributes:
        address: Device IPv4 address or hostname; None means auto-discover
        argv0: Override for the executable's argv[0]
        server: Keep 3dslink listening after the upload
        retries: Extra connection attempts after the first one
    """
    address: Optional[str] = None
    argv0: Optional[str] = None
    server: bool = False
    retries: int = DEFAULT_RETRIES


@dataclass
class ParsedInvocation:
    """One classified command line."""
    subcommand: Subcommand
    deploy_opts: DeployOptions = field(default_factory=DeployOptions)
    build_args: List[str] = field(default_factory=list)
    exec_args: List[str] = field(default_factory=list)
    raw_args: List[str] = field(default_factory=list)
    passthrough_name: Optional[str] = None
    show_help: bool = False
    show_version: bool = False
    deploy_flags_given: bool = False

    @property
    def informational(self) -> bool:
        """True for help and version requests, which never build anything."""
        return self.show_help or self.show_version or self.subcommand is Subcommand.HELP

    def passthrough_args(self) -> List[str]:
        """Arguments for cargo when no orchestrator semantics apply."""
        return list(self.raw_args)


@dataclass(frozen=True)
class FlagSpec:
    names: Tuple[str, ...]
    dest: str
    takes_value: bool
    help: str
    type: Optional[object] = None

    @property
    def long(self) -> str:
        return next(n for n in self.names if n.startswith('--'))


def _non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid retry count: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"retry count must be >= 0, got {number}")
    return number


def _address(value: str) -> str:
    try:
        return parse_address(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


ORCHESTRATOR_FLAGS = (
    FlagSpec(('-a', '--address'), 'address', True,
             'IP address or hostname of the device (default: auto-discover)', _address),
    FlagSpec(('-0', '--argv0'), 'argv0', True,
             "Set the executable's argv[0]"),
    FlagSpec(('-s', '--server'), 'server', False,
             'Keep 3dslink listening after sending the executable'),
    # No short form: -r belongs to cargo's --release
    FlagSpec(('--retries',), 'retries', True,
             'Connection retries before giving up', _non_negative_int),
    FlagSpec(('-h', '--help'), 'show_help', False, 'Show usage and exit'),
    FlagSpec(('-V', '--version'), 'show_version', False, 'Show version and exit'),
)

DEPLOY_DESTS = ('address', 'argv0', 'server', 'retries')

_LONG_FLAGS: Dict[str, FlagSpec] = {n: s for s in ORCHESTRATOR_FLAGS for n in s.names if n.startswith('--')}
_SHORT_FLAGS: Dict[str, FlagSpec] = {n: s for s in ORCHESTRATOR_FLAGS for n in s.names if not n.startswith('--')}


class _OrchestratorParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting."""

    def error(self, message):
        raise ArgumentAmbiguity(f"{self.prog}: {message}")


def setup_parser(parser, defaults: Optional[DeployOptions] = None):
    """Setup argument parser for the orchestrator's own flags"""
    defaults = defaults or DeployOptions()
    for spec in ORCHESTRATOR_FLAGS:
        if spec.takes_value:
            parser.add_argument(*spec.names, dest=spec.dest, type=spec.type, help=spec.help)
        else:
            parser.add_argument(*spec.names, dest=spec.dest, action='store_true', help=spec.help)
    parser.set_defaults(
        address=defaults.address,
        argv0=defaults.argv0,
        server=defaults.server,
        retries=defaults.retries,
    )


def match_flag(token: str) -> Tuple[Optional[FlagSpec], Optional[str]]:
    """Match a token against the orchestrator flags.

    Returns:
        (spec, inline_value); spec is None when the token is not ours.
        ``--address=1.2.3.4`` and ``-a1.2.3.4`` carry their value inline.
    """
    if token.startswith('--'):
        name, sep, value = token.partition('=')
        spec = _LONG_FLAGS.get(name)
        if spec is None:
            return None, None
        return spec, (value if sep else None)

    if token.startswith('-') and len(token) > 1:
        spec = _SHORT_FLAGS.get(token[:2])
        if spec is None:
            return None, None
        if len(token) == 2:
            return spec, None
        if spec.takes_value:
            return spec, token[2:]
        # Bundled short flags like -sv are left to cargo
        return None, None

    return None, None


def classify_token(token: str) -> TokenClass:
    if token == SEPARATOR:
        return TokenClass.BOUNDARY
    spec, _ = match_flag(token)
    return TokenClass.ORCHESTRATOR if spec else TokenClass.UNCLASSIFIED


def split_tokens(tokens: List[str]) -> Tuple[List[str], List[str], List[str]]:
    """Split tokens into (orchestrator, build_args, exec_args).

    Orchestrator tokens are returned normalized to ``--long=value`` form so
    values starting with a dash survive argparse.

    Raises:
        ArgumentAmbiguity: If a flag that needs a value has none
    """
    orchestrator: List[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        token_class = classify_token(token)

        if token_class is TokenClass.BOUNDARY:
            i += 1
            break
        if token_class is TokenClass.UNCLASSIFIED:
            break

        spec, value = match_flag(token)
        if spec.takes_value and value is None:
            if i + 1 >= len(tokens) or tokens[i + 1] == SEPARATOR:
                raise ArgumentAmbiguity(f"{token} requires a value")
            value = tokens[i + 1]
            i += 2
        else:
            i += 1

        if spec.takes_value:
            orchestrator.append(f"{spec.long}={value}")
        elif token.startswith('--'):
            # Keep --server=x as-is so argparse rejects it
            orchestrator.append(token)
        else:
            orchestrator.append(spec.long)

    passthrough = tokens[i:]
    if SEPARATOR in passthrough:
        split = passthrough.index(SEPARATOR)
        return orchestrator, passthrough[:split], passthrough[split + 1:]
    return orchestrator, passthrough, []


def classify(
    subcommand_name: str,
    tokens: List[str],
    defaults: Optional[DeployOptions] = None
) -> ParsedInvocation:
    """Classify the tokens following a subcommand name.

    Args:
        subcommand_name: First positional token (build, run, test, help, ...)
        tokens: Everything after it, unmodified
        defaults: Deploy option defaults (from ctrbuild.yaml) that flags override

    Returns:
        ParsedInvocation; unknown subcommands become PASSTHROUGH with the
        tokens untouched in raw_args

    Raises:
        ArgumentAmbiguity: On malformed orchestrator flags, or executable
            args given to a subcommand that never runs anything
    """
    tokens = list(tokens)
    try:
        subcommand = Subcommand(subcommand_name)
    except ValueError:
        subcommand = Subcommand.PASSTHROUGH
    if subcommand is Subcommand.PASSTHROUGH:
        return ParsedInvocation(
            subcommand=subcommand,
            deploy_opts=defaults or DeployOptions(),
            build_args=list(tokens),
            raw_args=tokens,
            passthrough_name=subcommand_name,
        )

    if subcommand is Subcommand.HELP:
        return ParsedInvocation(subcommand=subcommand, raw_args=tokens, show_help=True)

    orchestrator, build_args, exec_args = split_tokens(tokens)

    parser = _OrchestratorParser(
        prog=f"ctrbuild {subcommand_name}",
        add_help=False,
        allow_abbrev=False,
    )
    setup_parser(parser, defaults)
    namespace = parser.parse_args(orchestrator)

    if subcommand is Subcommand.BUILD and exec_args:
        raise ArgumentAmbiguity(
            "executable args (after a second '--') only apply to run and test"
        )

    deploy_flags_given = any(
        match_flag(token)[0].dest in DEPLOY_DESTS for token in orchestrator
    )

    return ParsedInvocation(
        subcommand=subcommand,
        deploy_opts=DeployOptions(
            address=namespace.address,
            argv0=namespace.argv0,
            server=namespace.server,
            retries=namespace.retries,
        ),
        build_args=build_args,
        exec_args=exec_args,
        raw_args=tokens,
        show_help=namespace.show_help,
        show_version=namespace.show_version,
        deploy_flags_given=deploy_flags_given,
    )


def parse_command_line(
    argv: List[str],
    defaults: Optional[DeployOptions] = None
) -> Optional[ParsedInvocation]:
    """Classify a full command line (without the program name).

    Returns None when no subcommand was given at all.
    """
    args = list(argv)
    # `cargo ctrbuild run` execs `cargo-ctrbuild ctrbuild run`
    if args and args[0] == CARGO_SUBCOMMAND_NAME:
        args = args[1:]
    if not args:
        return None

    first, rest = args[0], args[1:]
    if first in ('-h', '--help'):
        return ParsedInvocation(subcommand=Subcommand.HELP, raw_args=rest, show_help=True)
    if first in ('-V', '--version'):
        return ParsedInvocation(subcommand=Subcommand.HELP, raw_args=rest, show_version=True)

    return classify(first, rest, defaults)
