"""
Conversion of host symbol names into plain python identifiers.
"""
import collections
import keyword
import re
import typing as T
import unicodedata

# A named glyph, eg. `\[Alpha]`. The enclosed name is an open vocabulary.
_GLYPH_TOKEN = re.compile(r'\\\[([^\]]+)\]')
_ILLEGAL_CHARACTERS = re.compile(r'[^A-Za-z0-9_]')

# Words of a unicode character name that carry no information about the glyph.
_IGNORED_UNICODE_WORDS = ('GREEK', 'LETTER', 'SMALL', 'SYMBOL')


def _glyph_name(character: str) -> str:
    """
    Spell a non-ASCII character the way it would appear inside a glyph token, using its unicode
    name: `α` (GREEK SMALL LETTER ALPHA) becomes `alpha`, `Ω` becomes `capitalomega`.
    """
    try:
        name = unicodedata.name(character)
    except ValueError:
        # Unnamed code point: nothing to spell, drop it.
        return ''
    words = [w for w in re.split(r'[\s-]+', name) if w not in _IGNORED_UNICODE_WORDS]
    if 'CAPITAL' in words:
        words = ['CAPITAL'] + [w for w in words if w != 'CAPITAL']
    return ''.join(words).lower()


def normalize(raw_name: str) -> str:
    """
    Convert a raw host symbol name to a canonical python identifier.

    Glyph tokens `\\[Name]` are replaced by `name` in lowercase, non-ASCII letters are spelled out
    by name, and characters that cannot appear in an identifier are stripped. Names that would
    start with a digit are prefixed with `_`; names that collide with a python keyword (eg.
    `\\[Lambda]` -> `lambda`) get a trailing `_`.

    Args:
      raw_name: Symbol name as known to the host.

    Returns:
      A valid python identifier.
    """
    result = _GLYPH_TOKEN.sub(lambda match: match.group(1).lower(), raw_name)
    if not result.isascii():
        result = ''.join(c if c.isascii() else _glyph_name(c) for c in result)
    result = _ILLEGAL_CHARACTERS.sub('', result)
    if not result or result[0].isdigit():
        result = '_' + result
    if keyword.iskeyword(result):
        result += '_'
    return result


def find_collisions(raw_names: T.Iterable[str]) -> T.Dict[str, T.List[str]]:
    """
    Find normalized identifiers produced by more than one distinct raw name.

    Returns:
      Dict from normalized identifier to the sorted list of raw names that map onto it. Only
      identifiers with two or more sources are included.
    """
    sources: T.Dict[str, T.Set[str]] = collections.defaultdict(set)
    for raw in raw_names:
        sources[normalize(raw)].add(raw)
    return {name: sorted(raws) for name, raws in sources.items() if len(raws) > 1}
