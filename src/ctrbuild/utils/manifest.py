"""Packaging defaults from the crate's Cargo.toml.

Read from the manifest:

    [package]
    name          example titles ("<example> - <name> example")
    authors[0]    smdh author
    description   smdh description

    [package.metadata.cargo-3ds]
    icon, romfs_dir, examples.<name>, tests.<name>, lib
        same layout as the package: section of ctrbuild.yaml

ctrbuild.yaml is layered on top, so anything it sets wins.
"""
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict

from ctrbuild.core.protocols import FileSystemService
from ctrbuild.errors import ConfigError
from ctrbuild.utils.config import PackageConfig, ProjectConfig, TargetMetadata, parse_package

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = 'Cargo.toml'
METADATA_KEY = 'cargo-3ds'


def _string(value: Any) -> Any:
    # `description.workspace = true` and friends are tables, not values
    return value if isinstance(value, str) else None


def package_from_manifest(data: Dict[str, Any]) -> PackageConfig:
    """Build a PackageConfig from a parsed Cargo.toml.

    Manifests without a [package] table (virtual workspaces) give an
    empty PackageConfig.
    """
    package = data.get('package')
    if not isinstance(package, dict):
        return PackageConfig()

    authors = package.get('authors')
    author = None
    if isinstance(authors, list) and authors:
        author = _string(authors[0])

    base = PackageConfig(
        name=_string(package.get('name')),
        default=TargetMetadata(description=_string(package.get('description')), author=author),
    )

    metadata = package.get('metadata')
    section = metadata.get(METADATA_KEY) if isinstance(metadata, dict) else None
    if section is None:
        return base
    return base.merge(parse_package(section, f"package.metadata.{METADATA_KEY}"))


def read_cargo_manifest(filesystem: FileSystemService, project_dir: Path) -> PackageConfig:
    """Read packaging defaults from ``project_dir/Cargo.toml``.

    A missing manifest is not an error here; cargo reports it itself.

    Raises:
        ConfigError: If the manifest is not valid TOML
    """
    path = project_dir / MANIFEST_FILE_NAME
    if not filesystem.exists(path):
        logger.debug("No %s in %s", MANIFEST_FILE_NAME, project_dir)
        return PackageConfig()

    try:
        data = tomllib.loads(filesystem.read_file(path))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Could not parse {path}: {e}")

    logger.debug("Loaded packaging metadata from %s", path)
    return package_from_manifest(data)


def apply_manifest(config: ProjectConfig, manifest: PackageConfig) -> ProjectConfig:
    """Use Cargo.toml metadata wherever ctrbuild.yaml is silent."""
    config.package = manifest.merge(config.package)
    return config
