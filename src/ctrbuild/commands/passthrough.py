"""Forward unknown subcommands to cargo unchanged"""


def execute(router, invocation):
    """Run `cargo <name> <args...>` with the inherited environment.

    Returns:
        cargo's exit code, unchanged
    """
    args = [invocation.passthrough_name] + invocation.passthrough_args()
    return router.invoker.passthrough(args)
