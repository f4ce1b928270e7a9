"""Project configuration (ctrbuild.yaml) loading and metadata merging.

Layout:

    deploy:    defaults for --address/--argv0/--server/--retries
    tools:     paths of cargo, smdhtool, 3dsxtool, 3dslink
    package:   packaging metadata, with per-target overrides under
               examples:/tests:/lib:

The file is optional; a missing file yields the built-in defaults.
"""
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

from ctrbuild.core.protocols import ConfigLoader, FileSystemService
from ctrbuild.deploy.factory import parse_address
from ctrbuild.errors import ConfigError
from ctrbuild.utils.arguments import DeployOptions

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = 'ctrbuild.yaml'
CONFIG_ENV_VAR = 'CTRBUILD_CONFIG'

DEFAULT_TOOLS = {
    'cargo': 'cargo',
    'smdhtool': 'smdhtool',
    '3dsxtool': '3dsxtool',
    '3dslink': '3dslink',
}

METADATA_FIELDS = ('icon', 'romfs_dir', 'description', 'author')


@dataclass(frozen=True)
class TargetMetadata:
    """Packaging metadata for one build target. None means "not set here"."""
    icon: Optional[str] = None
    romfs_dir: Optional[str] = None
    description: Optional[str] = None
    author: Optional[str] = None

    def merge(self, other: 'TargetMetadata') -> 'TargetMetadata':
        """Return a copy where every field set in ``other`` overrides ours."""
        overrides = {
            name: getattr(other, name)
            for name in METADATA_FIELDS
            if getattr(other, name) is not None
        }
        return replace(self, **overrides)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'TargetMetadata':
        if not data:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"Target metadata must be a mapping, got: {data!r}")
        values = {}
        for name in METADATA_FIELDS:
            # romfs-dir is accepted as an alias, as in Cargo.toml metadata
            value = data.get(name, data.get(name.replace('_', '-')))
            values[name] = str(value) if value is not None else None
        return cls(**values)


@dataclass
class PackageConfig:
    """The package: section."""
    name: Optional[str] = None
    default: TargetMetadata = field(default_factory=TargetMetadata)
    examples: Dict[str, TargetMetadata] = field(default_factory=dict)
    tests: Dict[str, TargetMetadata] = field(default_factory=dict)
    lib: Optional[TargetMetadata] = None

    def merge(self, other: 'PackageConfig') -> 'PackageConfig':
        """Return a copy with ``other`` layered on top, target by target."""
        def merge_targets(ours, theirs):
            merged = dict(ours)
            for name, meta in theirs.items():
                merged[name] = merged[name].merge(meta) if name in merged else meta
            return merged

        lib = self.lib
        if other.lib is not None:
            lib = lib.merge(other.lib) if lib is not None else other.lib

        return PackageConfig(
            name=other.name or self.name,
            default=self.default.merge(other.default),
            examples=merge_targets(self.examples, other.examples),
            tests=merge_targets(self.tests, other.tests),
            lib=lib,
        )

    def metadata_for(self, kind: str, target_name: str) -> TargetMetadata:
        """Resolve metadata for a target: package defaults, then its own section.

        Args:
            kind: 'example', 'test', 'lib' or anything else for plain binaries
            target_name: Cargo target name
        """
        specific = None
        if kind == 'example':
            specific = self.examples.get(target_name)
        elif kind == 'test':
            specific = self.tests.get(target_name)
            if specific is None and self.lib is not None:
                # Unit test executables are named after the crate
                specific = self.lib
        elif kind == 'lib':
            specific = self.lib

        if specific is None:
            return self.default
        return self.default.merge(specific)


@dataclass
class ProjectConfig:
    """Everything ctrbuild.yaml can configure."""
    deploy: DeployOptions = field(default_factory=DeployOptions)
    tools: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TOOLS))
    package: PackageConfig = field(default_factory=PackageConfig)
    source: Optional[str] = None

    def tool(self, name: str) -> str:
        return self.tools.get(name, DEFAULT_TOOLS.get(name, name))


def _parse_deploy(data: Any) -> DeployOptions:
    if data is None:
        return DeployOptions()
    if not isinstance(data, dict):
        raise ConfigError(f"'deploy' must be a mapping, got: {data!r}")

    retries = data.get('retries', DeployOptions.retries)
    if isinstance(retries, bool) or not isinstance(retries, int) or retries < 0:
        raise ConfigError(f"'deploy.retries' must be a non-negative integer, got: {retries!r}")

    try:
        address = parse_address(data.get('address'))
    except ValueError as e:
        raise ConfigError(f"'deploy.address': {e}")

    argv0 = data.get('argv0')
    return DeployOptions(
        address=address,
        argv0=str(argv0) if argv0 is not None else None,
        server=bool(data.get('server', False)),
        retries=retries,
    )


def _parse_targets(data: Any, section: str) -> Dict[str, TargetMetadata]:
    if not data:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"'package.{section}' must be a mapping of target name to metadata")
    return {str(name): TargetMetadata.from_dict(meta) for name, meta in data.items()}


def parse_package(data: Any, section: str = 'package') -> PackageConfig:
    """Build a PackageConfig from a package: section or Cargo.toml metadata table.

    Raises:
        ConfigError: If the section or one of its targets is not a mapping
    """
    if not data:
        return PackageConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"'{section}' must be a mapping")
    lib = data.get('lib')
    name = data.get('name')
    return PackageConfig(
        name=str(name) if name is not None else None,
        default=TargetMetadata.from_dict(
            {k: v for k, v in data.items() if k not in ('examples', 'tests', 'lib', 'name')}
        ),
        examples=_parse_targets(data.get('examples'), 'examples'),
        tests=_parse_targets(data.get('tests'), 'tests'),
        lib=TargetMetadata.from_dict(lib) if lib is not None else None,
    )


def parse_config(data: Any, source: Optional[str] = None) -> ProjectConfig:
    """Build a ProjectConfig from parsed YAML.

    Raises:
        ConfigError: If the document or one of its sections has the wrong shape
    """
    if data is None:
        return ProjectConfig(source=source)
    if not isinstance(data, dict):
        raise ConfigError(f"{source or CONFIG_FILE_NAME}: top level must be a mapping")

    tools = dict(DEFAULT_TOOLS)
    tool_data = data.get('tools') or {}
    if not isinstance(tool_data, dict):
        raise ConfigError("'tools' must be a mapping of tool name to path")
    tools.update({str(k): str(v) for k, v in tool_data.items()})

    return ProjectConfig(
        deploy=_parse_deploy(data.get('deploy')),
        tools=tools,
        package=parse_package(data.get('package')),
        source=source,
    )


def load_project_config(
    config_loader: ConfigLoader,
    filesystem: FileSystemService,
    project_dir: Path,
    environ: Dict[str, str]
) -> ProjectConfig:
    """Load ctrbuild.yaml from CTRBUILD_CONFIG or the project directory.

    Args:
        config_loader: YAML loader
        filesystem: Used to check whether the file exists
        project_dir: Directory searched for ctrbuild.yaml
        environ: Environment (CTRBUILD_CONFIG overrides the location)

    Returns:
        Parsed configuration, or defaults when no file exists

    Raises:
        ConfigError: If CTRBUILD_CONFIG names a missing file, or parsing fails
    """
    explicit = environ.get(CONFIG_ENV_VAR)
    path = Path(explicit) if explicit else project_dir / CONFIG_FILE_NAME

    if not filesystem.exists(path):
        if explicit:
            raise ConfigError(f"Config file not found: {path} (from {CONFIG_ENV_VAR})")
        logger.debug("No %s in %s, using defaults", CONFIG_FILE_NAME, project_dir)
        return ProjectConfig()

    try:
        data = config_loader.load_yaml(str(path))
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(f"Could not read {path}: {e}")

    logger.debug("Loaded config from %s", path)
    return parse_config(data, source=str(path))
