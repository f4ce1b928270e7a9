"""Usage and version output"""
import sys

USAGE = '''\
Usage: ctrbuild <COMMAND> [OPTIONS] [CARGO_ARGS]... [-- [EXEC_ARGS]...]

Build and run Rust programs for the Nintendo 3DS.

Commands:
  build     Build the project and package every executable as a .3dsx
  run       Build, package and send the executable to a 3DS with 3dslink
  test      Build the tests, package the test executable and send it to a 3DS
  help      Show this message
  <other>   Any other command is passed to cargo unchanged (e.g. `ctrbuild fmt`)

Options (run and test; must come before any cargo argument):
  -a, --address <ADDR>   IP address or hostname of the 3DS (default: auto-discover)
  -0, --argv0 <ARGV0>    Set the executable's argv[0] (default: 3dslink's choice)
  -s, --server           Keep 3dslink listening for the program's output
      --retries <N>      Connection retries before giving up (default: 10)
  -h, --help             Show this message
  -V, --version          Show the version

Examples:
  ctrbuild build --release
  ctrbuild run -a 192.168.1.50 --example demo
  ctrbuild run --server -- --release -- --verbose
  ctrbuild test --lib

Arguments after the first unrecognized option (or after `--`) go to cargo.
A further `--` starts the arguments passed to the executable on the device.
'''


def print_usage(stream=None):
    print(USAGE, file=stream or sys.stdout, end='')


def show(invocation, stream=None):
    """Print the version for -V, usage otherwise. Returns the exit code."""
    if invocation.show_version:
        from ctrbuild import __version__
        print(f"ctrbuild {__version__}", file=stream or sys.stdout)
        return 0
    print_usage(stream)
    return 0


def execute(router, invocation):
    """Execute help command"""
    return show(invocation, router.stdout)
