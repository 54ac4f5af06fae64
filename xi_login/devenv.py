"""Development environment descriptor.

Describes the reproducible development shell (``flake.nix``): a pinned
upstream package set, a local environment-definition input, and one shell
output per supported platform parameterized by extra native packages.
"""

import argparse
import dataclasses
import re
import sys
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from xi_login.logger.logger import get_logger, init_logger
from xi_login.logger.types import Category, param

DEFAULT_NIXPKGS = "github:NixOS/nixpkgs/nixos-22.11"
DEFAULT_HOME = "path:./nix/home"
DEFAULT_SHELL = "python"
DEFAULT_EXTRA_INPUTS = ("pkg-config", "luajit", "mariadb-connector-c")
DEFAULT_SYSTEMS = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "aarch64-darwin",
)

_NIX_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_'-]*$")
_NIX_SYSTEM = re.compile(r"^[a-z0-9_]+-[a-z0-9_]+$")
# Flake references are rendered inside Nix string literals
_UNSAFE_IN_STRING = ('"', "\\", "${", "\n")


def normalize_packages(packages: Iterable[str]) -> tuple[str, ...]:
    """
    Validate package names and drop duplicates, keeping first occurrence.

    Raises:
        ValueError: If a name is not a valid Nix identifier
    """
    seen: dict[str, None] = {}
    for name in packages:
        if not _NIX_IDENTIFIER.match(name):
            raise ValueError(f"Invalid package name: {name!r}")
        seen.setdefault(name, None)
    return tuple(seen)


def check_flake_ref(name: str, value: str) -> None:
    """
    Reject flake references that would break out of a Nix string literal.

    Raises:
        ValueError: If the reference is empty or contains quotes, backslashes,
            interpolation or line breaks
    """
    if not value or any(token in value for token in _UNSAFE_IN_STRING):
        raise ValueError(f"Invalid {name} reference: {value!r}")


@dataclass(frozen=True)
class ShellOutput:
    """Shell environment for one platform."""

    system: str
    shell: str
    nixpkgs: str
    extra_inputs: tuple[str, ...]


@dataclass(frozen=True)
class ShellDescriptor:
    """Inputs and parameters of the development shell flake."""

    nixpkgs: str = DEFAULT_NIXPKGS
    home: str = DEFAULT_HOME
    shell: str = DEFAULT_SHELL
    extra_inputs: tuple[str, ...] = DEFAULT_EXTRA_INPUTS
    systems: tuple[str, ...] = DEFAULT_SYSTEMS

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra_inputs", normalize_packages(self.extra_inputs))
        if not _NIX_IDENTIFIER.match(self.shell):
            raise ValueError(f"Invalid shell name: {self.shell!r}")
        for name in ("nixpkgs", "home"):
            check_flake_ref(name, getattr(self, name))
        if not self.systems:
            raise ValueError("At least one system is required")
        for system in self.systems:
            if not _NIX_SYSTEM.fullmatch(system):
                raise ValueError(f"Invalid system: {system!r}")

    def with_extra_inputs(self, packages: Iterable[str]) -> "ShellDescriptor":
        """Copy with a different extra package list; other fields unchanged."""
        return dataclasses.replace(self, extra_inputs=tuple(packages))

    def outputs(self) -> dict[str, ShellOutput]:
        """One shell output per supported system."""
        return {
            system: ShellOutput(
                system=system,
                shell=self.shell,
                nixpkgs=self.nixpkgs,
                extra_inputs=self.extra_inputs,
            )
            for system in dict.fromkeys(self.systems)
        }

    def render(self) -> str:
        """Render the descriptor as ``flake.nix`` text."""
        systems = " ".join(f'"{system}"' for system in dict.fromkeys(self.systems))
        packages = " ".join(self.extra_inputs)
        return (
            "{\n"
            f'  inputs.nixpkgs.url = "{self.nixpkgs}";\n'
            f'  inputs.home.url = "{self.home}";\n'
            "\n"
            "  outputs = { self, nixpkgs, home }:\n"
            f"    home.lib.eachSystem [ {systems} ] (system:\n"
            "      let pkgs = import nixpkgs { inherit system; };\n"
            "      in {\n"
            f"        packages.default = home.packages.${{system}}.shells.{self.shell} {{\n"
            f"          extraInputs = with pkgs; [ {packages} ];\n"
            "        };\n"
            "      });\n"
            "}\n"
        )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="xi-devenv",
        description="Render the development shell flake.",
    )
    parser.add_argument("--nixpkgs", default=DEFAULT_NIXPKGS, help="Upstream package set pin")
    parser.add_argument("--home", default=DEFAULT_HOME, help="Local environment-definition input")
    parser.add_argument("--shell", default=DEFAULT_SHELL, help="Shell flavour from the home input")
    parser.add_argument(
        "--extra",
        action="append",
        default=None,
        metavar="PACKAGE",
        help="Extra native package (repeatable, replaces the defaults)",
    )
    parser.add_argument("--write", type=Path, default=None, metavar="PATH", help="Write to file")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    init_logger(service_name="xi-devenv", environment="dev")
    logger = get_logger().with_category(Category.DEVENV)

    try:
        descriptor = ShellDescriptor(
            nixpkgs=args.nixpkgs,
            home=args.home,
            shell=args.shell,
            extra_inputs=tuple(args.extra) if args.extra else DEFAULT_EXTRA_INPUTS,
        )
    except ValueError as e:
        logger.error("Invalid descriptor", e)
        return 2

    text = descriptor.render()
    if args.write is None:
        sys.stdout.write(text)
        return 0

    args.write.write_text(text, encoding="utf-8")
    logger.info(
        "Descriptor written",
        param("path", str(args.write)),
        param("systems", len(descriptor.outputs())),
        param("extra_inputs", list(descriptor.extra_inputs)),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
