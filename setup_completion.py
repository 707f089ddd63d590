#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Setup script for shell completion of the guibridge command.
Run this after installing the package to enable tab completion.
"""

import os
import sys
import argparse

RC_FILES = {
    "bash": "~/.bashrc",
    "zsh": "~/.zshrc",
    "fish": "~/.config/fish/completions/guibridge.fish",
    "tcsh": "~/.tcshrc",
}


def completion_line(shell):
    """The rc-file line that registers guibridge completion for `shell`."""
    if shell == "fish":
        return "register-python-argcomplete --shell fish guibridge | source"
    if shell == "tcsh":
        return "eval `register-python-argcomplete --shell tcsh guibridge`"
    return 'eval "$(register-python-argcomplete guibridge)"'


def setup_completion(argv=None):
    """Set up shell completion for the guibridge command."""
    parser = argparse.ArgumentParser(
        description="Setup shell completion for the guibridge command"
    )
    parser.add_argument(
        "--shell",
        choices=sorted(RC_FILES),
        default=None,
        help="Shell to setup completion for (default: auto-detect from $SHELL)"
    )
    parser.add_argument(
        "--no-modify-rc",
        action="store_true",
        help="Only print the completion line"
    )
    args = parser.parse_args(argv)

    shell = args.shell or os.path.basename(os.environ.get("SHELL", ""))
    if shell not in RC_FILES:
        print(f"Error: unsupported or undetected shell '{shell}'. Use --shell with one of: "
              f"{', '.join(sorted(RC_FILES))}.")
        return 1

    line = completion_line(shell)
    print(f"Shell completion command for {shell}:")
    print(f"  {line}")
    if args.no_modify_rc:
        return 0

    rc_file = os.path.expanduser(RC_FILES[shell])
    try:
        if os.path.exists(rc_file):
            with open(rc_file, "r") as f:
                if line in f.read():
                    print(f"\nCompletion already set up in {rc_file}.")
                    return 0
        os.makedirs(os.path.dirname(rc_file), exist_ok=True)
        with open(rc_file, "a") as f:
            f.write(f"\n# Added by guibridge setup_completion.py\n{line}\n")
    except OSError as e:
        print(f"\nError writing {rc_file}: {e}")
        print(f"Please add this line to your {shell} configuration manually:")
        print(f"  {line}")
        return 1

    print(f"\nAdded completion to {rc_file}")
    print(f"Please restart your shell or run: source {rc_file}")
    return 0


if __name__ == "__main__":
    sys.exit(setup_completion())
