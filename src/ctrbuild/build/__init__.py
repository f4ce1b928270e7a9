"""
Build pipeline for the 3DS target.

Stages, in order:
    - BuildConfigurator: toolchain root, RUSTFLAGS, build-std detection
    - BuildInvoker: runs cargo, scans the target dir for artifacts
    - ArtifactSelector: picks the most recently built executable
    - Packager: smdhtool + 3dsxtool into a .3dsx
"""

from .environment import BuildConfigurator, BuildEnvironment, TARGET_TRIPLE
from .artifacts import ArtifactKind, ArtifactScanner, ArtifactSelector, BuildArtifact
from .invoker import BuildInvoker, BuildResult
from .packager import Packager, PackagedArtifact

__all__ = [
    "BuildConfigurator",
    "BuildEnvironment",
    "TARGET_TRIPLE",
    "ArtifactKind",
    "ArtifactScanner",
    "ArtifactSelector",
    "BuildArtifact",
    "BuildInvoker",
    "BuildResult",
    "Packager",
    "PackagedArtifact",
]
