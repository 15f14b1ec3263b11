from __future__ import annotations

RESERVATION_CODE_PREFIX = "RS-"
PAYMENT_NUMBER_PREFIX = "PM-"
CODE_WIDTH = 5


def next_code(prefix: str, last_code: str | None, width: int = CODE_WIDTH) -> str:
    """Return the code following ``last_code``, e.g. ``RS-00041`` -> ``RS-00042``.

    Starts at 1 when there is no previous code. The number grows past
    ``width`` digits rather than wrapping.
    """
    if not last_code:
        number = 1
    else:
        if not last_code.startswith(prefix):
            raise ValueError(f"Code {last_code!r} does not start with {prefix!r}")
        number = int(last_code[len(prefix):]) + 1
    return f"{prefix}{number:0{width}d}"
