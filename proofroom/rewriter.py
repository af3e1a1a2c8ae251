"""Single-pass scanning and rewriting of resource references.

Markup is scanned for ``src``/``href``/``srcset`` attribute values and inline
``url(...)`` tokens; stylesheets for ``@import`` and ``url(...)``. Every match
is handed to a caller-supplied ``resolve`` callback and only the reference
span is replaced, so all surrounding text survives byte-for-byte.
"""

import re
from typing import Callable, List, Match, Optional, Pattern

from .utils import is_skippable_url

Resolver = Callable[[str], Optional[str]]

HTML = "html"
CSS = "css"

_URL_TOKEN = r"""\burl\(\s*(?P<uq>["']?)(?P<uval>[^"')]*?)(?P=uq)\s*\)"""

HTML_REF_RE = re.compile(
    r"""
    \bsrcset\s*=\s*(?P<sq>["'])(?P<sval>.*?)(?P=sq)
    | \b(?:src|href)\s*=\s*(?P<aq>["'])(?P<aval>.*?)(?P=aq)
    | """
    + _URL_TOKEN,
    re.IGNORECASE | re.VERBOSE | re.DOTALL,
)

CSS_REF_RE = re.compile(
    r"""
    @import\s+(?:
        url\(\s*(?P<iq>["']?)(?P<ival>[^"')]*?)(?P=iq)\s*\)
        | (?P<iq2>["'])(?P<ival2>.*?)(?P=iq2)
    )
    | """
    + _URL_TOKEN,
    re.IGNORECASE | re.VERBOSE | re.DOTALL,
)

_PATTERNS = {HTML: HTML_REF_RE, CSS: CSS_REF_RE}
_PLAIN_GROUPS = ("aval", "uval", "ival", "ival2")
# a candidate URL runs to the next whitespace, trailing commas excluded
_SRCSET_URL_RE = re.compile(r"[\s,]*(\S+)")


def _pattern_for(mode: str) -> Pattern[str]:
    try:
        return _PATTERNS[mode]
    except KeyError:
        raise ValueError(f"unknown rewrite mode: {mode!r}") from None


def _splice(m: Match[str], group: str, new: str) -> str:
    whole = m.group(0)
    s = m.start(group) - m.start()
    e = m.end(group) - m.start()
    return whole[:s] + new + whole[e:]


def _replace_value(raw: str, resolve: Resolver, skip_absolute: bool) -> Optional[str]:
    ref = raw.strip()
    if is_skippable_url(ref, skip_absolute=skip_absolute):
        return None
    new = resolve(ref)
    if new is None:
        return None
    lead = raw[: len(raw) - len(raw.lstrip())]
    trail = raw[len(raw.rstrip()) :]
    return f"{lead}{new}{trail}"


def _rewrite_srcset(value: str, resolve: Resolver, skip_absolute: bool) -> Optional[str]:
    out: List[str] = []
    pos = 0
    changed = False
    while pos < len(value):
        m = _SRCSET_URL_RE.match(value, pos)
        if not m:
            out.append(value[pos:])
            break
        url = m.group(1).rstrip(",")
        url_end = m.start(1) + len(url)
        if url_end == m.end(1):
            # descriptors run to the next comma
            comma = value.find(",", url_end)
            end = len(value) if comma == -1 else comma + 1
        else:
            end = m.end(1)
        new = _replace_value(url, resolve, skip_absolute)
        if new is not None:
            changed = True
        out.append(value[pos : m.start(1)])
        out.append(url if new is None else new)
        out.append(value[url_end:end])
        pos = end
    return "".join(out) if changed else None


def rewrite(
    text: str, mode: str, resolve: Resolver, *, skip_absolute: bool = False
) -> str:
    """Rewrite every resolvable reference in ``text``.

    ``resolve`` receives the trimmed reference and returns its replacement,
    or ``None`` to leave that occurrence untouched. Fragment-only, ``data:``,
    ``mailto:``, ``tel:`` and ``javascript:`` references never reach
    ``resolve``; with ``skip_absolute`` neither do ``http(s)://`` and ``//``.
    """
    pattern = _pattern_for(mode)

    def repl(m: Match[str]) -> str:
        groups = m.groupdict()
        if groups.get("sval") is not None:
            new = _rewrite_srcset(groups["sval"], resolve, skip_absolute)
            return m.group(0) if new is None else _splice(m, "sval", new)
        for g in _PLAIN_GROUPS:
            if groups.get(g) is not None:
                new = _replace_value(groups[g], resolve, skip_absolute)
                return m.group(0) if new is None else _splice(m, g, new)
        return m.group(0)

    return pattern.sub(repl, text)


def find_references(text: str, mode: str, *, skip_absolute: bool = False) -> List[str]:
    """Return the raw references ``rewrite`` would offer, in document order."""
    found: List[str] = []

    def collect(ref: str) -> Optional[str]:
        found.append(ref)
        return None

    rewrite(text, mode, collect, skip_absolute=skip_absolute)
    return found
