"""revlang configuration: project-level .revlangrc.yml support.

Loads configuration from .revlangrc.yml (or .revlangrc.yaml, .revlangrc.json)
found by walking up from the working directory.

Example .revlangrc.yml:
    int_type: i32                  # slot width; overflow is always an error
    verify_assertions: true        # reject provably failing assertions (z3)
    check_guard_on_backward: false
    max_call_depth: 200
    pure_functions:
      - abs
      - max
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from revlang.evaluator import PURE_FUNCTIONS
from revlang.numeric import IntDomain


@dataclass
class RevConfig:
    """Interpreter configuration."""
    int_type: str = "i64"
    # Static z3 check of if-assertions at registration
    verify_assertions: bool = False
    # Re-evaluate the guard after a backward branch and compare
    check_guard_on_backward: bool = False
    max_call_depth: int = 100
    # Names of the builtin pure functions expressions may call
    pure_functions: list[str] = field(default_factory=lambda: sorted(PURE_FUNCTIONS))

    @property
    def domain(self) -> IntDomain:
        return IntDomain.from_name(self.int_type)

    def validate(self) -> None:
        IntDomain.from_name(self.int_type)
        if self.max_call_depth < 1:
            raise ValueError(f"max_call_depth must be positive, got {self.max_call_depth}")
        unknown = [f for f in self.pure_functions if f not in PURE_FUNCTIONS]
        if unknown:
            raise ValueError(
                f"Unknown pure function(s) {unknown}. Known: {sorted(PURE_FUNCTIONS)}"
            )


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".revlangrc.yml",
    ".revlangrc.yaml",
    ".revlangrc.json",
]


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> RevConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, returns defaults. A file that exists but
    does not parse is an error.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return RevConfig()

    with open(path, "r") as f:
        content = f.read()

    if path.endswith(".json"):
        data = json.loads(content) if content.strip() else {}
    else:
        data = yaml.safe_load(content) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return _dict_to_config(data)


def _dict_to_config(data: dict[str, Any]) -> RevConfig:
    """Convert a parsed dict to RevConfig."""
    config = RevConfig()

    if "int_type" in data:
        config.int_type = str(data["int_type"])
    if "verify_assertions" in data:
        config.verify_assertions = bool(data["verify_assertions"])
    if "check_guard_on_backward" in data:
        config.check_guard_on_backward = bool(data["check_guard_on_backward"])
    if "max_call_depth" in data:
        config.max_call_depth = int(data["max_call_depth"])
    if "pure_functions" in data and isinstance(data["pure_functions"], list):
        config.pure_functions = [str(f) for f in data["pure_functions"]]

    config.validate()
    return config
