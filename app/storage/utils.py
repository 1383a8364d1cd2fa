"""
Helper functions for the storage layer.
"""

import re
from typing import Pattern


def glob_to_regex(pattern: str) -> Pattern[str]:
    """Translate a key glob into an anchored regular expression.

    Only ``*`` is a wildcard (any run of characters, including none). Every
    other character matches literally, so keys containing regex metacharacters
    such as ``.`` or ``?`` are safe.

    Args:
        pattern: Glob pattern, e.g. ``"rsc:cache:account:*"``

    Returns:
        Compiled regex matching the whole key
    """
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$", re.DOTALL)


def escape_redis_glob(pattern: str) -> str:
    """Escape a key glob for Redis ``SCAN MATCH``.

    Redis also treats ``?``, ``[...]`` and ``\\`` as glob syntax. Escaping them
    leaves ``*`` as the only wildcard, the same rule glob_to_regex applies to
    the fallback map.
    """
    return re.sub(r"([?\[\]\\])", r"\\\1", pattern)


def mask_session_id(session_id: str) -> str:
    """Mask session token for secure logging.

    Shows only the first 8 characters of the random part to prevent session
    hijacking via logs.

    Args:
        session_id: Full session token

    Returns:
        Masked token (e.g., "session_abc12345***")
    """
    if not session_id or len(session_id) < 8:
        return "***"
    prefix, sep, random_part = session_id.partition("_")
    if sep and len(random_part) >= 8:
        return f"{prefix}_{random_part[:8]}***"
    return f"{session_id[:8]}***"
