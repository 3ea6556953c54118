"""
Text normalization for booking-platform notifications.

Mail relays regularly deliver the UTF-8 body of a notification decoded as
Latin-1 / cp1252, which turns "ś" into "Å›" and "—" into "â€”". Everything here
is pure and idempotent so it can be applied to any text, any number of times.
"""

import re
import unicodedata

# Characters we expect in notifications and know how to recover from mojibake.
# Â Ã Ä Å â and the typographic quotes are left out: they are the first and
# second characters of garbled sequences, and repairing into them could create
# a new sequence on the next pass.
_REPAIRABLE_CHARS = (
    "ąćęłńóśźżĄĆĘŁŃÓŚŹŻ"
    "áàäãåéèêëíìîïóòôöõúùûüýÿçñß"
    "ÁÀÉÈÊËÍÌÎÏÒÔÖÕÚÙÛÜÝÇÑ"
    "—–−‒―"
)

_DASHES = "\u2014\u2013\u2212\u2012\u2015"
_HORIZONTAL_SPACE = re.compile("[ \t\u00a0\u2007\u202f]+")
_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\ufeff]")


def _garbled_forms(char: str) -> set[str]:
    raw = char.encode("utf-8")
    forms = set()
    for codec in ("cp1252", "latin-1"):
        try:
            forms.add(raw.decode(codec))
        except UnicodeDecodeError:
            # cp1252 leaves 0x81, 0x8D, 0x8F, 0x90 and 0x9D undefined
            continue
    forms.discard(char)
    return forms


def _build_repair_table() -> dict[str, str]:
    table = {}
    for char in _REPAIRABLE_CHARS:
        for garbled in _garbled_forms(char):
            table[garbled] = char
    return table


MOJIBAKE_TABLE: dict[str, str] = _build_repair_table()

# Longest sequences first so three-character dash forms win over their prefixes
_MOJIBAKE_PATTERN = re.compile(
    "|".join(re.escape(seq) for seq in sorted(MOJIBAKE_TABLE, key=len, reverse=True))
)
_DASH_PATTERN = re.compile(f"[{_DASHES}]")


def repair_mojibake(text: str) -> str:
    """Replace known mis-decoded multi-byte sequences with the intended characters"""
    return _MOJIBAKE_PATTERN.sub(lambda m: MOJIBAKE_TABLE[m.group(0)], text)


def normalize(raw: str) -> str:
    """
    Normalize raw notification text before any pattern matching.

    Repairs mojibake, maps dash variants to "-", unifies line endings and
    collapses horizontal whitespace inside each line. Line structure is kept
    because the parser works line by line.
    """
    if not raw:
        return ""

    text = _ZERO_WIDTH.sub("", raw)
    text = repair_mojibake(text)
    text = _DASH_PATTERN.sub("-", text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")

    lines = [_HORIZONTAL_SPACE.sub(" ", line).strip() for line in text.split("\n")]
    return "\n".join(lines)


def fold_diacritics(text: str) -> str:
    """Lowercase, accent-free, single-spaced form used for comparisons"""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    # "ł" has no decomposition
    stripped = stripped.replace("ł", "l").replace("Ł", "L")
    return " ".join(stripped.casefold().split())
