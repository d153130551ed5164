"""
Entry resolvers: turn what a submitter typed into a typed entry.

A resolver tries its code formats in order and returns the first match. The
submitter may name a format explicitly ("smm1 1234-0000-...") to skip the
others.
"""

import hashlib
import hmac
import logging
import re
from dataclasses import dataclass

from domain.models.entry import Entry
from domain.models.submitter import Submitter
from services.interfaces import IEntryResolver

logger = logging.getLogger("queso_queue.services.entry_resolvers")

_DELIM = "[-. ]?"
_SMM2_PART = "[A-HJ-NP-Y0-9]{3}"
_SMM2_LAST = "[A-HJ-NP-Y0-9]{2}[FGH]"
_SMM1_PART = "[0-9A-F]{4}"

SMM1_FIRST_ID = 1008512
SMM1_LAST_ID = 69559301
_SMM1_KEY = bytes.fromhex("9ce21c9e046e85f0cf6ca00d1eaaaf5f")


@dataclass(frozen=True)
class CodeFormat:
    """A named code syntax with a canonical form."""

    type: str
    pattern: re.Pattern
    separator: str = "-"

    def match(self, text: str) -> str | None:
        """Return the canonical code if ``text`` is a valid code of this format."""
        match = self.pattern.fullmatch(text.strip().upper())
        if match is None:
            return None
        code = self.separator.join(match.groups())
        return code if self.is_valid(match.groups()) else None

    def is_valid(self, parts: tuple[str, ...]) -> bool:
        return True


class Smm1CodeFormat(CodeFormat):
    """Super Mario Maker codes, e.g. ``1A2B-0000-0012-3456``; the first group is a checksum."""

    def is_valid(self, parts: tuple[str, ...]) -> bool:
        checksum, high, low = parts[0], parts[2], parts[3]
        course_id = high + low
        level_id = int(course_id, 16)
        if level_id < SMM1_FIRST_ID or level_id > SMM1_LAST_ID:
            return False
        data = bytes.fromhex("00000000" + course_id)[::-1]
        digest = hmac.new(_SMM1_KEY, data, hashlib.md5).hexdigest()
        return checksum == (digest[6:8] + digest[4:6]).upper()


SMM2_FORMAT = CodeFormat(
    type="smm2",
    pattern=re.compile(f"({_SMM2_PART}){_DELIM}({_SMM2_PART}){_DELIM}({_SMM2_LAST})"),
)

SMM1_FORMAT = Smm1CodeFormat(
    type="smm1",
    pattern=re.compile(f"({_SMM1_PART}){_DELIM}(0000){_DELIM}({_SMM1_PART}){_DELIM}({_SMM1_PART})"),
)

DEFAULT_FORMATS = (SMM2_FORMAT, SMM1_FORMAT)


class CodeFormatResolver(IEntryResolver):
    """
    Resolves codes against a list of code formats.

    Args:
        formats: Formats in the order they are tried
    """

    def __init__(self, formats=DEFAULT_FORMATS):
        self.formats = list(formats)

    async def resolve(self, code: str, submitter: Submitter) -> Entry | None:
        return self.resolve_code(code)

    def resolve_code(self, code: str) -> Entry | None:
        text = code.strip()
        if not text:
            return None

        name, _, rest = text.partition(" ")
        named = next((fmt for fmt in self.formats if fmt.type == name.lower()), None)
        if named is not None and rest.strip():
            resolved = named.match(rest)
            if resolved is not None:
                return Entry(type=named.type, code=resolved)

        for fmt in self.formats:
            resolved = fmt.match(text)
            if resolved is not None:
                return Entry(type=fmt.type, code=resolved)

        logger.debug(f"No code format matched {text!r}")
        return None
