"""Test command: build test executables and run one on the device

`cargo test` would try to execute the ARM test binaries on the host, so
`--no-run` is always passed. If the user asked for `--no-run` themselves, the
test executables are only built and packaged.
"""
from ctrbuild.build.artifacts import ArtifactKind
from ctrbuild.commands.build import package_all
from ctrbuild.commands.run import build_and_deploy

NO_RUN = '--no-run'
TEST_KINDS = (ArtifactKind.TEST, ArtifactKind.DOCTEST)


def execute(router, invocation):
    """Execute test command"""
    if NO_RUN in invocation.build_args:
        environment = router.configurator.configure(invocation)
        result = router.invoker.invoke('test', environment, invocation.build_args, TEST_KINDS)
        package_all(router, environment, result.artifacts)
        return result.exit_code

    build_args = list(invocation.build_args) + [NO_RUN]
    return build_and_deploy(router, invocation, 'test', build_args, TEST_KINDS)
