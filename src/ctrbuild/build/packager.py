"""Packaging of ELF artifacts into the 3DS homebrew container.

An ELF built by cargo is not runnable by the Homebrew Launcher. It needs:

    <elf>.smdh   icon, title, description, author  (smdhtool)
    <elf>.3dsx   executable + smdh + optional RomFS (3dsxtool)

The .3dsx is the single file sent to the device.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ctrbuild.build.artifacts import ArtifactKind, BuildArtifact
from ctrbuild.core.protocols import FileSystemService, Logger, ProcessExecutor
from ctrbuild.errors import PackagingFailed
from ctrbuild.utils.config import PackageConfig, TargetMetadata

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = 'Homebrew Application'
DEFAULT_AUTHOR = 'Unspecified Author'
DEFAULT_ICON = 'icon.png'
DEFAULT_ROMFS_DIR = 'romfs'


@dataclass(frozen=True)
class PackagedArtifact:
    artifact: BuildArtifact
    smdh_path: Path
    path_3dsx: Path
    romfs_path: Optional[Path] = None


def path_smdh(artifact: BuildArtifact) -> Path:
    return artifact.path.with_suffix('.smdh')


def path_3dsx(artifact: BuildArtifact) -> Path:
    return artifact.path.with_suffix('.3dsx')


def _metadata_kind(kind: ArtifactKind) -> str:
    if kind in (ArtifactKind.TEST, ArtifactKind.DOCTEST):
        return 'test'
    if kind is ArtifactKind.EXAMPLE:
        return 'example'
    return 'bin'


class Packager:
    """Runs smdhtool and 3dsxtool for built artifacts.

    Args:
        process_executor: Spawns the devkitPro tools
        filesystem: Checks icon and RomFS paths
        logger: Console output
        package: Metadata from ctrbuild.yaml
        project_dir: Root that relative icon/RomFS paths are resolved against
        toolchain_root: devkitPro root, for the default icon
        smdhtool: smdhtool executable
        tool_3dsx: 3dsxtool executable
    """

    def __init__(
        self,
        process_executor: ProcessExecutor,
        filesystem: FileSystemService,
        logger: Logger,
        package: PackageConfig,
        project_dir: Path,
        toolchain_root: Path,
        smdhtool: str = 'smdhtool',
        tool_3dsx: str = '3dsxtool'
    ):
        self.process = process_executor
        self.fs = filesystem
        self.log = logger
        self.package = package
        self.project_dir = project_dir
        self.toolchain_root = toolchain_root
        self.smdhtool = smdhtool
        self.tool_3dsx = tool_3dsx

    def metadata_for(self, artifact: BuildArtifact) -> TargetMetadata:
        return self.package.metadata_for(_metadata_kind(artifact.kind), artifact.target_name)

    def title_for(self, artifact: BuildArtifact) -> str:
        name = artifact.target_name
        if artifact.kind in (ArtifactKind.TEST, ArtifactKind.DOCTEST):
            return f"{name} tests"
        if artifact.kind is ArtifactKind.EXAMPLE:
            package_name = self.package.name or self.project_dir.name
            return f"{name} - {package_name} example"
        return name

    def icon_for(self, metadata: TargetMetadata) -> str:
        icon = self.project_dir / (metadata.icon or DEFAULT_ICON)
        if self.fs.exists(icon):
            return str(icon)
        if metadata.icon:
            self.log.warning(f"Configured icon {icon} not found, using the default icon")
        return str(self.toolchain_root / 'libctru' / 'default_icon.png')

    def romfs_for(self, metadata: TargetMetadata) -> Optional[Path]:
        """Return the RomFS directory to embed, if any.

        Raises:
            PackagingFailed: If a RomFS dir was configured but does not exist
        """
        romfs = self.project_dir / (metadata.romfs_dir or DEFAULT_ROMFS_DIR)
        if self.fs.is_dir(romfs):
            return romfs
        if metadata.romfs_dir is not None and metadata.romfs_dir != DEFAULT_ROMFS_DIR:
            raise PackagingFailed(f"Could not find configured RomFS dir: {romfs}")
        return None

    def _run_tool(self, cmd: List[str], tool: str) -> None:
        logger.debug("Running: %s", ' '.join(cmd))
        try:
            exit_code = self.process.popen(cmd).wait()
        except FileNotFoundError:
            raise PackagingFailed(
                f"{tool} command failed, most likely due to '{tool}' not being in $PATH\n"
                f"It ships with devkitPro's 3ds-tools package"
            )
        if exit_code != 0:
            raise PackagingFailed(f"{tool} exited with status {exit_code}", exit_code)

    def build_smdh(self, artifact: BuildArtifact, metadata: TargetMetadata) -> Path:
        smdh = path_smdh(artifact)
        self.log.info(f"Building smdh: {smdh}")
        self._run_tool([
            self.smdhtool,
            '--create',
            self.title_for(artifact),
            metadata.description or DEFAULT_DESCRIPTION,
            metadata.author or DEFAULT_AUTHOR,
            self.icon_for(metadata),
            str(smdh),
        ], 'smdhtool')
        return smdh

    def build_3dsx(self, artifact: BuildArtifact, smdh: Path, romfs: Optional[Path]) -> Path:
        output = path_3dsx(artifact)
        self.log.info(f"Building 3dsx: {output}")
        cmd = [self.tool_3dsx, str(artifact.path), str(output), f"--smdh={smdh}"]
        if romfs is not None:
            self.log.info(f"Adding RomFS from {romfs}")
            cmd.append(f"--romfs={romfs}")
        self._run_tool(cmd, '3dsxtool')
        return output

    def package_artifact(self, artifact: BuildArtifact) -> PackagedArtifact:
        """Create the .smdh and .3dsx next to the artifact.

        Raises:
            PackagingFailed: If a tool fails or the RomFS dir is missing
        """
        metadata = self.metadata_for(artifact)
        romfs = self.romfs_for(metadata)
        smdh = self.build_smdh(artifact, metadata)
        output = self.build_3dsx(artifact, smdh, romfs)
        return PackagedArtifact(artifact=artifact, smdh_path=smdh, path_3dsx=output, romfs_path=romfs)
