"""
CAP "group" text format.

A group is a whitespace-delimited list of tokens; a token holding whitespace
is enclosed in double quotes. Used by <addresses>, <references> and
<incidents>.
"""

from typing import Iterable, List

# characters that force a token to be quoted on output
_NEEDS_QUOTES = (',', '"')


def parse(text: str) -> List[str]:
    """
    Split group text into tokens.

    Quoted tokens have their enclosing quotes removed and \\" / \\\\ unescaped.

    Raises:
        ValueError: on an unterminated quoted token
    """
    tokens = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch.isspace():
            i += 1
            continue

        if ch == '"':
            # quoted token
            i += 1
            buf = []
            while True:
                if i >= n:
                    raise ValueError(f"Unterminated quote in group: {text!r}")
                ch = text[i]
                if ch == '\\' and i + 1 < n and text[i + 1] in ('"', '\\'):
                    buf.append(text[i + 1])
                    i += 2
                elif ch == '"':
                    i += 1
                    break
                else:
                    buf.append(ch)
                    i += 1
            tokens.append(''.join(buf))
        else:
            start = i
            while i < n and not text[i].isspace():
                i += 1
            tokens.append(text[start:i])

    return tokens


def _quote(token: str) -> str:
    if token and not any(c.isspace() for c in token) and not any(c in token for c in _NEEDS_QUOTES):
        return token
    escaped = token.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def serialize(tokens: Iterable[str]) -> str:
    """Join tokens with single spaces, quoting where needed."""
    return ' '.join(_quote(t) for t in tokens)
