import re

_DIGITS = re.compile(r"(\d+)")


def code_sort_key(code):
    """Natural ordering for outcome codes so that CLO2 sorts before CLO10."""
    if not code:
        return ()
    parts = _DIGITS.split(code.strip().upper())
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in parts
        if part != ""
    )


def outcome_sort_key(outcome):
    return (code_sort_key(outcome.code), outcome.outcome_id)
