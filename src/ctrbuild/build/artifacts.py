"""Build artifact discovery and selection.

Cargo lays out cross-compiled outputs as:

    target/armv6k-nintendo-3ds/<profile>/<bin>            ordinary binaries
    target/armv6k-nintendo-3ds/<profile>/examples/<name>  examples
    target/armv6k-nintendo-3ds/<profile>/deps/<name>-<hash>  test executables
    target/armv6k-nintendo-3ds/<profile>/doctests/<dir>/rust_out  doctests

Artifacts are found by scanning these directories for ELF files rather than
by parsing cargo's output, so any cargo message format works.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from ctrbuild.core.protocols import FileSystemService
from ctrbuild.errors import NoArtifactProduced

logger = logging.getLogger(__name__)

ELF_MAGIC = b'\x7fELF'
_HASH_SUFFIX = re.compile(r'-[0-9a-f]{16}$')


class ArtifactKind(Enum):
    BINARY = 'binary'
    TEST = 'test'
    EXAMPLE = 'example'
    DOCTEST = 'doctest'


# Subdirectory of the profile directory holding each kind
KIND_SUBDIRS: Dict[ArtifactKind, Optional[str]] = {
    ArtifactKind.BINARY: None,
    ArtifactKind.EXAMPLE: 'examples',
    ArtifactKind.TEST: 'deps',
    ArtifactKind.DOCTEST: 'doctests',
}


@dataclass(frozen=True)
class BuildArtifact:
    path: Path
    kind: ArtifactKind
    modified_time: float
    name: str = ''

    @property
    def target_name(self) -> str:
        return self.name or self.path.name


def profile_dir_name(build_args: Sequence[str]) -> str:
    """Work out which profile directory cargo writes to.

    --profile wins over --release, as in cargo. The dev profile lives in
    `debug/` for historical reasons.
    """
    profile = None
    for i, arg in enumerate(build_args):
        if arg == '--profile' and i + 1 < len(build_args):
            profile = build_args[i + 1]
        elif arg.startswith('--profile='):
            profile = arg.split('=', 1)[1]

    if profile is None:
        release = any(arg in ('--release', '-r') for arg in build_args)
        return 'release' if release else 'debug'
    if profile in ('dev', 'test'):
        return 'debug'
    if profile == 'bench':
        return 'release'
    return profile


def output_dir(project_dir: Path, environ: Dict[str, str], target_triple: str,
               build_args: Sequence[str]) -> Path:
    """Directory cargo writes cross-compiled artifacts into."""
    target_dir = environ.get('CARGO_TARGET_DIR')
    base = Path(target_dir) if target_dir else project_dir / 'target'
    if not base.is_absolute():
        base = project_dir / base
    return base / target_triple / profile_dir_name(build_args)


def artifact_name(path: Path, kind: ArtifactKind) -> str:
    if kind is ArtifactKind.TEST:
        return _HASH_SUFFIX.sub('', path.name)
    if kind is ArtifactKind.DOCTEST:
        return path.parent.name
    return path.name


class ArtifactScanner:
    """Finds executables cargo produced for the target.

    Args:
        filesystem: Filesystem operations abstraction
    """

    def __init__(self, filesystem: FileSystemService):
        self.fs = filesystem

    def _is_executable(self, path: Path) -> bool:
        # Executables for this target carry no extension; .d/.rlib/.3dsx etc. do
        if path.suffix or not self.fs.is_file(path):
            return False
        try:
            return self.fs.read_header(path, len(ELF_MAGIC)) == ELF_MAGIC
        except OSError as e:
            logger.debug("Skipping unreadable %s: %s", path, e)
            return False

    def _candidates(self, directory: Path, kind: ArtifactKind) -> List[Path]:
        if not self.fs.is_dir(directory):
            return []
        if kind is ArtifactKind.DOCTEST:
            paths = self.fs.rglob(directory, '*')
        else:
            paths = self.fs.iterdir(directory)
        return sorted(p for p in paths if self._is_executable(p))

    def scan(
        self,
        profile_dir: Path,
        kinds: Iterable[ArtifactKind],
        since: Optional[float] = None
    ) -> List[BuildArtifact]:
        """Scan a profile directory for executables of the requested kinds.

        Args:
            profile_dir: e.g. target/armv6k-nintendo-3ds/debug
            kinds: Which artifact kinds to look for
            since: Build start time; files modified at or after it are "new"

        Returns:
            Newly-modified artifacts, or every matching artifact if the build
            relinked nothing (an up-to-date build still has a current binary).
        """
        found: List[BuildArtifact] = []
        for kind in kinds:
            subdir = KIND_SUBDIRS[kind]
            directory = profile_dir / subdir if subdir else profile_dir
            for path in self._candidates(directory, kind):
                found.append(BuildArtifact(
                    path=path,
                    kind=kind,
                    modified_time=self.fs.mtime(path),
                    name=artifact_name(path, kind),
                ))

        if since is None:
            return found

        fresh = [a for a in found if a.modified_time >= since]
        if not fresh and found:
            logger.debug("No artifacts newer than build start, build was up to date")
            return found
        return fresh


# Cargo flags that name the target being built
TARGET_FLAGS: Dict[str, ArtifactKind] = {
    '--bin': ArtifactKind.BINARY,
    '--example': ArtifactKind.EXAMPLE,
    '--test': ArtifactKind.TEST,
}


def _normalize(name: str) -> str:
    return name.replace('-', '_')


def requested_targets(build_args: Sequence[str]) -> Set[Tuple[ArtifactKind, str]]:
    """(kind, name) pairs selected with --bin/--example/--test NAME."""
    requested = set()
    for i, arg in enumerate(build_args):
        flag, _, value = arg.partition('=')
        if flag not in TARGET_FLAGS:
            continue
        if not value:
            if i + 1 >= len(build_args) or build_args[i + 1].startswith('-'):
                continue
            value = build_args[i + 1]
        requested.add((TARGET_FLAGS[flag], _normalize(value)))
    return requested


class ArtifactSelector:
    """Picks the artifact to deploy from one build.

    When cargo args name targets (`--bin`, `--example`, `--test`), only
    artifacts of those targets are considered. This matters when the build
    was up to date and the scan returned every executable on disk.

    Known limitation: otherwise the latest modification time wins, and among
    equal timestamps the artifact scanned last wins. A build that produces
    several executables (e.g. multiple integration tests) deploys whichever
    was written last; filter with cargo args such as `--test name` or
    `--example name` to choose.
    """

    def narrow(self, artifacts: Sequence[BuildArtifact],
               build_args: Sequence[str]) -> List[BuildArtifact]:
        requested = requested_targets(build_args)
        if not requested or not artifacts:
            return list(artifacts)
        matching = [
            a for a in artifacts
            if (a.kind, _normalize(a.target_name)) in requested
        ]
        if not matching:
            logger.warning(
                "No artifact matches the requested targets, choosing among all %d",
                len(artifacts),
            )
            return list(artifacts)
        return matching

    def select(self, artifacts: Sequence[BuildArtifact],
               build_args: Sequence[str] = ()) -> BuildArtifact:
        """
        Raises:
            NoArtifactProduced: If the build produced no executable
        """
        artifacts = self.narrow(artifacts, build_args)
        selected = None
        for artifact in artifacts:
            if selected is None or artifact.modified_time >= selected.modified_time:
                selected = artifact

        if selected is None:
            raise NoArtifactProduced(
                "No executable found from build command output!\n"
                "Check that the package has a binary, example or test target"
            )

        if sum(1 for a in artifacts if a.modified_time == selected.modified_time) > 1:
            logger.warning(
                "Several artifacts share the latest timestamp; deploying %s",
                selected.path,
            )
        return selected
