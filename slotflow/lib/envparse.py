"""
Safe .env parser for slotflow settings.

Reads KEY=value files without shell execution. Values that look like
shell expansion are rejected so a settings file can never smuggle
commands into a deployment script that sources it. A lone pipe or
semicolon is accepted.
"""

import re
from pathlib import Path

# backticks, $( ), ${ }, && and ||
FORBIDDEN = re.compile(r'`|\$\(|\$\{|&&|\|\|')

LINE = re.compile(r'^(?:export\s+)?(?P<key>[^=]*?)\s*=\s*(?P<value>.*)$')
KEY = re.compile(r'^[A-Z][A-Z0-9_]*$')


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value


def parse_env(text: str, source: str = "<string>") -> dict[str, str]:
    """
    Parse env-formatted text into a dict.

    Raises:
        ValueError: if a line is malformed or a value contains a forbidden pattern
    """
    settings = {}
    for lineno, raw in enumerate(text.splitlines(), 1):
        stripped = raw.strip()
        if not stripped or stripped.startswith('#'):
            continue

        where = f"{source}:{lineno}"
        match = LINE.match(stripped)
        if match is None:
            raise ValueError(f"{where}: Invalid syntax (no '=')")

        key = match.group("key").strip()
        if not KEY.match(key):
            raise ValueError(f"{where}: Invalid key '{key}'")

        value = _unquote(match.group("value").strip())
        if FORBIDDEN.search(value):
            raise ValueError(f"{where}: Forbidden pattern in value for {key}")
        settings[key] = value

    return settings


def load_env(filepath: Path) -> dict[str, str]:
    """
    Parse an env file from disk.

    Raises:
        FileNotFoundError: if file doesn't exist
        ValueError: if syntax invalid or forbidden pattern found
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Env file not found: {path}")
    return parse_env(path.read_text(), source=path.name)
