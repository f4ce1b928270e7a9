"""Integration tests for loading ctrbuild.yaml with the real YAML loader."""
import pytest

from ctrbuild.core import RealFileSystemService, YamlConfigLoader
from ctrbuild.errors import ConfigError
from ctrbuild.utils.arguments import parse_command_line
from ctrbuild.utils.config import CONFIG_ENV_VAR, load_project_config


def load(project_dir, environ=None):
    fs = RealFileSystemService()
    return load_project_config(YamlConfigLoader(fs), fs, project_dir, environ or {})


class TestConfigFile:
    """Load real YAML files from a temporary project."""

    def test_full_file(self, tmp_path):
        # Arrange
        (tmp_path / 'ctrbuild.yaml').write_text(
            "deploy:\n"
            "  address: 192.168.1.50\n"
            "  retries: 3\n"
            "tools:\n"
            "  3dslink: /opt/devkitpro/tools/bin/3dslink\n"
            "package:\n"
            "  name: crate\n"
            "  author: Someone\n"
            "  examples:\n"
            "    demo:\n"
            "      romfs-dir: demo-romfs\n"
        )

        # Act
        config = load(tmp_path)

        # Assert
        assert config.deploy.address == '192.168.1.50'
        assert config.deploy.retries == 3
        assert config.tool('3dslink') == '/opt/devkitpro/tools/bin/3dslink'
        meta = config.package.metadata_for('example', 'demo')
        assert meta.romfs_dir == 'demo-romfs'
        assert meta.author == 'Someone'

    def test_defaults_feed_the_classifier(self, tmp_path):
        """Flags on the command line override file defaults."""
        (tmp_path / 'ctrbuild.yaml').write_text("deploy: {address: 10.0.0.2, retries: 1}\n")
        config = load(tmp_path)

        parsed = parse_command_line(['run', '--retries', '4'], config.deploy)

        assert parsed.deploy_opts.address == '10.0.0.2'
        assert parsed.deploy_opts.retries == 4

    def test_empty_file(self, tmp_path):
        (tmp_path / 'ctrbuild.yaml').write_text("")

        assert load(tmp_path).deploy.retries == 10

    def test_no_file(self, tmp_path):
        assert load(tmp_path).source is None

    def test_env_var_location(self, tmp_path):
        custom = tmp_path / 'elsewhere.yaml'
        custom.write_text("deploy: {server: true}\n")

        config = load(tmp_path / 'project', {CONFIG_ENV_VAR: str(custom)})

        assert config.deploy.server is True
        assert config.source == str(custom)

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / 'ctrbuild.yaml').write_text("deploy: [unclosed\n")

        with pytest.raises(ConfigError, match='Could not read'):
            load(tmp_path)

    def test_not_a_mapping(self, tmp_path):
        (tmp_path / 'ctrbuild.yaml').write_text("- just\n- a list\n")

        with pytest.raises(ConfigError):
            load(tmp_path)
