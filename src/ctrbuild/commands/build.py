"""Build command: cargo build for the 3DS, then package every executable"""
from ctrbuild.build.artifacts import ArtifactKind

BUILD_KINDS = (ArtifactKind.BINARY, ArtifactKind.EXAMPLE)


def package_all(router, environment, artifacts):
    """Package every artifact of a build that will not be deployed."""
    if not artifacts:
        router.log.warning("Build succeeded but produced no executable to package")
        return []

    packager = router.packager_factory(environment)
    packaged = [packager.package_artifact(artifact) for artifact in artifacts]
    for item in packaged:
        router.log.info(f"  ✓ {item.path_3dsx}")
    return packaged


def execute(router, invocation):
    """Execute build command

    No artifact is selected and nothing is deployed, so the result is cargo's
    exit status (0 here; failures raise BuildFailed).
    """
    if invocation.deploy_flags_given:
        router.log.warning("Deploy options have no effect on `build`; use `run` to send to a device")

    environment = router.configurator.configure(invocation)
    result = router.invoker.invoke('build', environment, invocation.build_args, BUILD_KINDS)
    package_all(router, environment, result.artifacts)
    return result.exit_code
