"""Unit tests for BuildConfigurator."""
import pytest
from pathlib import Path
from unittest.mock import Mock

from ctrbuild.build.environment import (
    TARGET_TRIPLE,
    BuildConfigurator,
    BuildEnvironment,
    RustcVersion,
    mandatory_flags,
    parse_rustc_version,
)
from ctrbuild.core.protocols import EnvironmentProvider, FileSystemService, ProcessExecutor
from ctrbuild.errors import ToolchainNotFound

DEVKITPRO = '/opt/devkitpro'
SYSROOT = '/home/me/.rustup/toolchains/nightly'

NIGHTLY = (
    "rustc 1.75.0-nightly (187b8131d 2023-10-03)\n"
    "binary: rustc\n"
    "commit-hash: 187b8131d4f760f856b214fce34534903276f2ef\n"
    "commit-date: 2023-10-03\n"
    "host: x86_64-unknown-linux-gnu\n"
    "release: 1.75.0-nightly\n"
    "LLVM version: 17.0.2\n"
)
STABLE = (
    "rustc 1.75.0 (82e1608df 2023-12-21)\n"
    "binary: rustc\n"
    "commit-date: 2023-12-21\n"
    "release: 1.75.0\n"
)
OLD_NIGHTLY = (
    "rustc 1.63.0-nightly (ca122c7eb 2022-06-13)\n"
    "commit-date: 2022-06-13\n"
    "release: 1.63.0-nightly\n"
)


def completed(returncode=0, stdout=''):
    result = Mock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = ''
    return result


class TestBuildConfigurator:
    """Test BuildConfigurator.configure()."""

    def setup_method(self):
        """Set up a valid devkitPro install with a prebuilt std."""
        self.env = Mock(spec=EnvironmentProvider)
        self.fs = Mock(spec=FileSystemService)
        self.process = Mock(spec=ProcessExecutor)

        self.environ = {'DEVKITPRO': DEVKITPRO}
        self.env.get_environ.return_value = self.environ
        self.fs.is_dir.return_value = True
        self.fs.exists.return_value = True
        self.version_result = completed(stdout=NIGHTLY)
        self.sysroot_result = completed(stdout=SYSROOT + '\n')
        self.process.run.side_effect = self.rustc

        self.configurator = BuildConfigurator(self.env, self.fs, self.process)

    def rustc(self, cmd, env=None):
        """Answer `rustc -vV` and `rustc --print sysroot`."""
        result = self.version_result if cmd[1:] == ['-vV'] else self.sysroot_result
        if isinstance(result, Exception):
            raise result
        return result

    def test_mandatory_flags_only(self):
        """Without RUSTFLAGS the flags are exactly the libctru link flags."""
        environment = self.configurator.configure()

        assert environment.target_triple == TARGET_TRIPLE
        assert environment.compiler_flags == f"-L{DEVKITPRO}/libctru/lib -lctru"
        assert environment.toolchain_root == Path(DEVKITPRO)
        assert environment.build_std is False

    def test_user_flags_appended(self):
        """User RUSTFLAGS come after the mandatory flags, never replace them."""
        self.environ['RUSTFLAGS'] = '-C opt-level=s  '

        environment = self.configurator.configure()

        assert environment.compiler_flags == f"{mandatory_flags(Path(DEVKITPRO))} -C opt-level=s"

    def test_missing_toolchain_root(self):
        """No DEVKITPRO is ToolchainNotFound with setup instructions."""
        del self.environ['DEVKITPRO']

        with pytest.raises(ToolchainNotFound, match='DEVKITPRO') as exc_info:
            self.configurator.configure()

        assert exc_info.value.exit_code == 3

    def test_toolchain_root_not_a_directory(self):
        self.fs.is_dir.return_value = False

        with pytest.raises(ToolchainNotFound, match='not a directory'):
            self.configurator.configure()

    def test_build_std_when_target_missing_from_sysroot(self):
        """No prebuilt std for the target means -Z build-std."""
        self.fs.exists.return_value = False

        environment = self.configurator.configure()

        assert environment.build_std is True
        self.fs.exists.assert_called_with(Path(SYSROOT) / 'lib' / 'rustlib' / TARGET_TRIPLE)

    def test_sysroot_env_skips_rustc(self):
        """SYSROOT is used as-is, without running rustc."""
        self.environ['SYSROOT'] = '/custom/sysroot'

        self.configurator.configure()

        invoked = [c[0][0][1:] for c in self.process.run.call_args_list]
        assert invoked == [['-vV']]
        self.fs.exists.assert_called_with(Path('/custom/sysroot/lib/rustlib') / TARGET_TRIPLE)

    def test_rustc_env_overrides_compiler(self):
        self.environ['RUSTC'] = '/usr/local/bin/rustc-nightly'

        self.configurator.configure()

        cmds = [c[0][0] for c in self.process.run.call_args_list]
        assert cmds == [
            ['/usr/local/bin/rustc-nightly', '-vV'],
            ['/usr/local/bin/rustc-nightly', '--print', 'sysroot'],
        ]

    def test_rustc_missing_falls_back_to_build_std(self):
        """A sysroot lookup that cannot run is not fatal."""
        self.sysroot_result = FileNotFoundError('rustc')

        environment = self.configurator.configure()

        assert environment.build_std is True

    def test_rustc_failure_falls_back_to_build_std(self):
        self.sysroot_result = completed(returncode=1)

        environment = self.configurator.configure()

        assert environment.build_std is True

    def test_configure_is_deterministic(self):
        """Same inputs, same environment."""
        assert self.configurator.configure() == self.configurator.configure()

    def test_recent_nightly_accepted(self):
        rustc_version = self.configurator.check_rust_version(self.environ)

        assert rustc_version == RustcVersion((1, 75, 0), 'nightly', '2023-10-03')

    def test_stable_rejected(self):
        """A stable rustc cannot build std for the target."""
        self.version_result = completed(stdout=STABLE)

        with pytest.raises(ToolchainNotFound, match='rustup override set nightly') as exc_info:
            self.configurator.configure()

        assert exc_info.value.exit_code == 3

    def test_old_nightly_rejected(self):
        """Nightlies from before 2022-06-15 are too old."""
        self.version_result = completed(stdout=OLD_NIGHTLY)

        with pytest.raises(ToolchainNotFound, match='rustup update nightly'):
            self.configurator.configure()

    def test_old_version_rejected_without_commit_date(self):
        self.version_result = completed(stdout="release: 1.62.0-nightly\ncommit-date: unknown\n")

        with pytest.raises(ToolchainNotFound, match='2022-06-15'):
            self.configurator.configure()

    def test_missing_rustc_is_fatal(self):
        """No rustc at all is reported before cargo runs."""
        self.version_result = FileNotFoundError('rustc')

        with pytest.raises(ToolchainNotFound, match='rustup'):
            self.configurator.configure()

    def test_version_check_failure(self):
        self.version_result = completed(returncode=1)

        with pytest.raises(ToolchainNotFound, match='-vV'):
            self.configurator.configure()


class TestParseRustcVersion:
    """Test parse_rustc_version() on `rustc -vV` output."""

    def test_nightly(self):
        assert parse_rustc_version(NIGHTLY) == RustcVersion((1, 75, 0), 'nightly', '2023-10-03')

    def test_stable(self):
        assert parse_rustc_version(STABLE).channel == 'stable'

    def test_beta(self):
        assert parse_rustc_version("release: 1.76.0-beta.3\n").channel == 'beta'

    def test_dev_build_without_commit_date(self):
        """Locally built compilers report `unknown` for the commit date."""
        rustc_version = parse_rustc_version("release: 1.80.0-dev\ncommit-date: unknown\n")

        assert rustc_version.channel == 'dev'
        assert rustc_version.commit_date is None

    @pytest.mark.parametrize('output', ['', 'rustc 1.75.0\n', 'release: banana\n'])
    def test_unparseable(self, output):
        with pytest.raises(ValueError):
            parse_rustc_version(output)


class TestBuildEnvironment:
    """Test BuildEnvironment.environ()."""

    def test_environ_sets_rustflags_on_a_copy(self):
        environment = BuildEnvironment(TARGET_TRIPLE, '-lctru -C x', Path(DEVKITPRO))
        base = {'PATH': '/usr/bin', 'RUSTFLAGS': '-C x'}

        env = environment.environ(base)

        assert env == {'PATH': '/usr/bin', 'RUSTFLAGS': '-lctru -C x'}
        assert base['RUSTFLAGS'] == '-C x'

    def test_frozen(self):
        environment = BuildEnvironment(TARGET_TRIPLE, '', Path(DEVKITPRO))

        with pytest.raises(AttributeError):
            environment.build_std = True
