import re
from typing import Optional
import bleach


def sanitize_input(value: Optional[str]) -> str:
    """Sanitize user-supplied free text before it is stored.

    - Strips HTML tags using bleach.clean(..., strip=True)
    - Removes NUL bytes and other control characters (newlines and tabs are kept)
    - Trims surrounding whitespace
    """
    if value is None:
        return ""
    val = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)
    # strip tags
    val = bleach.clean(val, tags=set(), strip=True)
    return val.strip()
