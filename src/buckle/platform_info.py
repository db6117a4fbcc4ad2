"""
Runtime facts used to expand artifact templates.

Architecture, operating system and target triple are detected once per run
and passed to the resolver as a RuntimeFacts value.
"""

import platform
from dataclasses import dataclass

from buckle.exceptions import UnsupportedPlatformError

_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}

_OS_ALIASES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
}

_TARGET_TRIPLES = {
    ("x86_64", "linux"): "x86_64-unknown-linux-musl",
    ("x86_64", "darwin"): "x86_64-apple-darwin",
    ("x86_64", "windows"): "x86_64-pc-windows-msvc",
    ("aarch64", "linux"): "aarch64-unknown-linux-gnu",
    ("aarch64", "darwin"): "aarch64-apple-darwin",
}


@dataclass(frozen=True)
class RuntimeFacts:
    """Values substituted for %arch%, %os% and %target%."""

    arch: str
    os: str
    target: str


def detect_runtime_facts() -> RuntimeFacts:
    """
    Detect the current machine's architecture, OS and target triple.

    Returns:
        RuntimeFacts: Normalized facts for this host.

    Raises:
        UnsupportedPlatformError: If the architecture or OS has no known target triple.
    """
    machine = platform.machine().lower()
    system = platform.system().lower()

    arch = _ARCH_ALIASES.get(machine)
    if arch is None:
        raise UnsupportedPlatformError(f"Unsupported architecture: {machine}")

    os_name = _OS_ALIASES.get(system)
    if os_name is None:
        raise UnsupportedPlatformError(f"Unsupported Arch/OS: {arch}/{system}")

    target = _TARGET_TRIPLES.get((arch, os_name))
    if target is None:
        raise UnsupportedPlatformError(f"Unsupported Arch/OS: {arch}/{os_name}")

    return RuntimeFacts(arch=arch, os=os_name, target=target)
