"""Run command: build, select the newest executable, package and deploy it"""
from ctrbuild.build.artifacts import ArtifactKind
from ctrbuild.deploy.exceptions import DeploymentError

RUN_KINDS = (ArtifactKind.BINARY, ArtifactKind.EXAMPLE)


def build_and_deploy(router, invocation, cargo_subcommand, build_args, kinds):
    """Shared pipeline of `run` and `test`.

    configure → cargo → select → package → deploy. Each stage raises its own
    CtrBuildError subclass, so the exit code tells which stage failed.
    """
    environment = router.configurator.configure(invocation)
    result = router.invoker.invoke(cargo_subcommand, environment, build_args, kinds)

    artifact = router.selector.select(result.artifacts, build_args)
    router.log.info(f"Selected {artifact.kind.value} '{artifact.target_name}': {artifact.path}")

    packaged = router.packager_factory(environment).package_artifact(artifact)

    try:
        outcome = router.deployer.deploy(
            packaged.path_3dsx,
            invocation.deploy_opts,
            invocation.exec_args,
            router.cancel,
        )
    except DeploymentError:
        router.log.info(f"Build succeeded, {packaged.path_3dsx} was not deployed")
        raise

    if outcome.cancelled:
        router.log.info("3dslink server stopped")
    else:
        router.log.info(f"Sent {packaged.path_3dsx.name} to {outcome.address}")
    return 0


def execute(router, invocation):
    """Execute run command"""
    return build_and_deploy(router, invocation, 'build', invocation.build_args, RUN_KINDS)
