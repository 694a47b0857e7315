# visual_edits/credentials.py
"""Secret loading and the per-request credential check.

The secret is read once, at startup, from an operator-managed file (by default
the supervisor config of the local code-server, whose `PASSWORD="..."` entry is
reused as the gateway API key). There is no rotation; restart to pick up a new
value.
"""

from __future__ import annotations

import hmac
import logging
import re
from pathlib import Path
from typing import Optional, Union

log = logging.getLogger(__name__)


def load_secret(path: Union[str, Path, None], pattern: Optional[str] = None) -> Optional[str]:
    """Return the secret stored in `path`, or None if it cannot be obtained.

    With a `pattern`, the first capture group of its first match is the secret.
    Without one, the whole file (stripped) is. An unreadable file, no match or
    an empty value all yield None.
    """
    if not path:
        return None
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        log.debug("secret file %s not readable: %s", path, e)
        return None

    if pattern:
        m = re.search(pattern, text)
        if not m:
            return None
        value = m.group(1) if m.groups() else m.group(0)
    else:
        value = text.strip()
    return value or None


def check_credential(provided: Optional[str], secret: Optional[str]) -> bool:
    """True iff a secret is configured and `provided` equals it.

    Constant-time over the byte strings.
    """
    if not secret or provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), secret.encode("utf-8"))


__all__ = ["check_credential", "load_secret"]
