# Stor - mirror module trees into a target directory
# Copyright (C) 2025 Istvan Sarandi
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Command-line interface for stor.

This module contains the CLI functions including argument parsing,
configuration file handling, and the main entry point.
"""

from __future__ import annotations
import os
import re
import shlex
import sys
import traceback
from typing import Sequence

from stor.stow import run_modules
from stor.types import (
    Operation,
    StowError,
    StowProgrammingError,
    StowCLIError,
    StowConfig,
)
from stor.util import (
    VERSION,
    PROGRAM_NAME,
    get_homedir_from_passwd,
    home_dir,
    warn,
)

RC_FILE = ".storrc"

_ACTIONS = {
    "S": Operation.STOW,
    "D": Operation.UNSTOW,
    "R": Operation.RESTOW,
}


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point for stor command."""
    try:
        _main(sys.argv[1:] if argv is None else list(argv))
    except StowProgrammingError as e:
        print(
            f"\n{PROGRAM_NAME}: INTERNAL ERROR: {e.message}\n{traceback.format_exc()}",
            file=sys.stderr,
        )
        print(
            "This _is_ a bug. Please submit a bug report so we can fix it! :-)",
            file=sys.stderr,
        )
        sys.exit(e.errno)
    except StowCLIError as e:
        print(e.message, file=sys.stderr)
        sys.exit(e.errno)
    except StowError as e:
        print(f"{PROGRAM_NAME}: ERROR: {e.message}", file=sys.stderr)
        sys.exit(e.errno)


def _main(argv: list[str]) -> None:
    """Main implementation (can raise StowError)."""
    options, modules = process_options(argv)

    config = StowConfig(
        target=options["target"],
        copy=options.get("copy", False),
        overwrite=options.get("overwrite", False),
        simulate=options.get("simulate", False),
        fold=options.get("fold", False),
        verbose=options.get("verbose", 0),
    )

    # Modules are handled one after another, in command line order
    result = run_modules(config, modules)

    if config.simulate:
        warn("Simulate: in simulation mode so not modifying filesystem.")

    if not result.success:
        sys.exit(1)


def _parse_bundled_options(
    chars: str, options: dict, action: Operation
) -> tuple[Operation, str | None]:
    """Parse bundled short options like -nfcR.

    Returns (action, target). target is the value glued to a trailing -t
    (as in -ntDIR), "" for a bare trailing -t whose value is the next
    argument, and None when the bundle has no -t.
    """
    for i, char in enumerate(chars):
        rest = chars[i + 1:]
        match char:
            case "n":
                options["simulate"] = True
            case "c":
                options["copy"] = True
            case "f":
                options["overwrite"] = True
            case "v":
                options["verbose"] = options.get("verbose", 0) + 1
            case "S" | "D" | "R":
                action = _ACTIONS[char]
            case "h":
                show_usage_and_exit()
            case "V":
                show_version_and_exit()
            case "t":
                return action, rest
            case _:
                show_usage_and_exit(f"Unknown option: {char}")
    return action, None


def parse_cli_options(
    args: Sequence[str],
) -> tuple[dict, list[tuple[Operation, str]]]:
    """Parse command line options.

    Returns: (options, modules) where modules lists (operation, module)
    pairs in the order they were given.
    """
    options: dict = {}
    modules: list[tuple[Operation, str]] = []
    action = Operation.STOW

    i = 0
    while i < len(args):
        arg = args[i]

        # Handle options with values
        if arg in ("-t", "--target"):
            if i + 1 >= len(args):
                show_usage_and_exit(f"Option {arg.lstrip('-')} requires an argument")
            i += 1
            options["target"] = args[i]
        elif arg.startswith("--target="):
            options["target"] = arg[9:]

        # Verbose option with optional value
        elif arg in ("-v", "--verbose"):
            options["verbose"] = options.get("verbose", 0) + 1
        elif arg.startswith("--verbose="):
            try:
                options["verbose"] = int(arg[10:])
            except ValueError:
                options["verbose"] = 1

        # Boolean flags
        elif arg in ("-n", "--no", "--simulate"):
            options["simulate"] = True
        elif arg in ("-c", "--copy"):
            options["copy"] = True
        elif arg in ("-f", "--overwrite"):
            options["overwrite"] = True
        elif arg == "--fold":
            options["fold"] = True

        # Action flags
        elif arg in ("-D", "--delete"):
            action = Operation.UNSTOW
        elif arg in ("-S", "--stow"):
            action = Operation.STOW
        elif arg in ("-R", "--restow"):
            action = Operation.RESTOW

        # Help and version
        elif arg in ("-h", "--help"):
            show_usage_and_exit()
        elif arg in ("-V", "--version"):
            show_version_and_exit()

        # Module argument (including "-")
        elif not arg.startswith("-") or arg == "-":
            modules.append((action, arg))

        elif arg == "--":
            modules.extend((action, module) for module in args[i + 1:])
            break

        elif arg.startswith("--"):
            opt_name = arg[2:].split("=", 1)[0]
            show_usage_and_exit(f"Unknown option: {opt_name}")

        else:
            # Bundled short options: -xyz is parsed as -x -y -z
            action, target = _parse_bundled_options(arg[1:], options, action)
            if target == "":
                if i + 1 >= len(args):
                    show_usage_and_exit("Option t requires an argument")
                i += 1
                target = args[i]
            if target is not None:
                options["target"] = target

        i += 1

    return (options, modules)


def process_options(
    argv: Sequence[str],
) -> tuple[dict, list[tuple[Operation, str]]]:
    """Parse and process command line and .storrc file options.

    Returns: (options, modules)
    """
    cli_options, modules = parse_cli_options(argv)
    rc_options = get_config_file_options()

    # Command line options win over .storrc ones
    options = dict(rc_options)
    options.update(cli_options)

    sanitize_path_options(options)
    check_modules(modules)

    return (options, modules)


def sanitize_path_options(options: dict) -> None:
    """Set the default target. Its validity is checked per module."""
    if "target" not in options:
        home = home_dir()
        if not home:
            show_usage_and_exit(
                f"{PROGRAM_NAME}: cannot determine home directory, please use --target\n"
            )
        options["target"] = home


def check_modules(modules: Sequence[tuple[Operation, str]]) -> None:
    if not modules:
        show_usage_and_exit(f"{PROGRAM_NAME}: No modules to stow or unstow\n")


def get_config_file_options() -> dict:
    """Search for default settings in any .storrc files.

    Modules named in .storrc files are ignored; only options are taken.
    """
    defaults: list[str] = []
    rc_candidate_paths = [RC_FILE]

    home = os.environ.get("HOME")
    if home:
        rc_candidate_paths.insert(0, os.path.join(home, RC_FILE))

    for file_path in rc_candidate_paths:
        try:
            with open(file_path, "r") as f:
                for line in f:
                    line = line.rstrip("\n\r")
                    try:
                        defaults.extend(shlex.split(line, comments=True))
                    except ValueError:
                        defaults.extend(line.split())
        except (FileNotFoundError, PermissionError):
            continue  # Skip missing or unreadable files
        except IsADirectoryError:
            raise StowCLIError(f"Could not open {file_path} for reading")

    rc_options, _ = parse_cli_options(defaults)

    if "target" in rc_options:
        rc_options["target"] = expand_filepath(rc_options["target"], "--target option")

    return rc_options


def expand_filepath(path: str, source: str) -> str:
    """Expand environment variables and tilde in file paths."""
    path = expand_environment_variables(path, source)
    path = expand_tilde_to_homedir(path)
    return path


def expand_environment_variables(path: str, source: str) -> str:
    """Expand environment variables in path.

    Replace non-escaped $VAR and ${VAR} with os.environ[VAR].
    """

    def replace_var(match):
        var = match.group(1)
        try:
            return os.environ[var]
        except KeyError:
            raise StowCLIError(
                f"{source} references undefined environment variable ${var}; aborting!"
            )

    path = re.sub(r"(?<!\\)\$\{([^}]+)}", replace_var, path)
    path = re.sub(r"(?<!\\)\$(\w+)", replace_var, path)
    path = path.replace("\\$", "$")

    return path


def expand_tilde_to_homedir(path: str) -> str:
    """Expand tilde to user's home directory path."""
    if "\\~" in path:
        return path.replace("\\~", "~")

    if not path.startswith("~"):
        return path

    # Split ~username/rest into parts
    tilde_part, slash, rest = path.partition("/")
    username = tilde_part.removeprefix("~")

    home = get_homedir_from_passwd(username=username) if username else home_dir()
    if not home:
        return path
    return home + slash + rest


def show_usage_and_exit(msg: str | None = None, exit_code: int | None = None) -> None:
    """Print program usage message and exit."""
    if msg:
        print(msg, file=sys.stderr)

    print(f"""{PROGRAM_NAME} version {VERSION}

SYNOPSIS:

    {PROGRAM_NAME} [OPTION ...] [-D|-S|-R] MODULE ... [-D|-S|-R] MODULE ...

OPTIONS:

    -t DIR, --target=DIR  Set target to DIR (default is $HOME)

    -S, --stow            Stow the modules that follow this option
    -D, --delete          Unstow the modules that follow this option
    -R, --restow          Restow (like {PROGRAM_NAME} -D followed by {PROGRAM_NAME} -S)

    -c, --copy            Copy instead of creating symlinks
    -f, --overwrite       Delete existing files/symlinks that are in the way
    --fold                Link whole directories that are missing from the
                          target instead of creating them

    -n, --no, --simulate  Do not actually make any filesystem changes
    -v, --verbose[=N]     Increase verbosity (-v adds 1; --verbose=N sets level)
    -V, --version         Show {PROGRAM_NAME} version number
    -h, --help            Show this help""")

    if exit_code is not None:
        sys.exit(exit_code)
    elif msg:
        sys.exit(1)
    else:
        sys.exit(0)


def show_version_and_exit() -> None:
    """Print version and exit."""
    print(f"{PROGRAM_NAME} version {VERSION}")
    sys.exit(0)


if __name__ == "__main__":
    main()
