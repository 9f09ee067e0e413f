import re
from typing import List

_UNICODE_ESCAPE = re.compile(r"\\u([0-9a-fA-F]{4})")
_CSS_CLASS_RULE = re.compile(r"^\.[a-zA-Z0-9_-]+\s*{")
_CSS_PROPERTY = re.compile(r"^[a-zA-Z-]+:[a-zA-Z0-9%\s().,-]+;$")


def unescape_unicode(text: str) -> str:
    """Replace ``\\uXXXX`` sequences until none are left."""
    while True:
        replaced = _UNICODE_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), text)
        if replaced == text:
            return text
        text = replaced


def looks_like_css(line: str) -> bool:
    return (
        ("{" in line and "}" in line)
        or "@keyframes" in line
        or bool(_CSS_CLASS_RULE.match(line))
        or bool(_CSS_PROPERTY.match(line))
    )


def clean_page_text(text: str) -> List[str]:
    """Heuristic noise filter for ``document.body.innerText``.

    Unescaping happens before splitting so that an escaped newline or brace
    cannot survive into the output and change a second pass.
    """
    lines = []
    for line in unescape_unicode(text).splitlines():
        line = line.strip()
        if not line or looks_like_css(line):
            continue
        lines.append(line)
    return lines
