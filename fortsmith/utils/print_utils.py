"""ANSI color helpers for console output."""

_RESET = "\033[0m"


def _colorize(text: str, code: str) -> str:
    return f"\033[{code}m{text}{_RESET}"


def cyan(text: str) -> str:
    return _colorize(text, "36")


def green(text: str) -> str:
    return _colorize(text, "32")


def red(text: str) -> str:
    return _colorize(text, "31")
