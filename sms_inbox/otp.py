"""Heuristic extraction of one-time passcodes from SMS bodies."""

import re
from typing import Optional

# 3+3 digits with an optional hyphen/space separator, else a 4-8 digit run.
# Alternation order makes the 3+3 form win at any position where both fit.
OTP_PATTERN = re.compile(r"\b(?:\d{3}[-\s]?\d{3}|\d{4,8})", re.ASCII)
WHITESPACE = re.compile(r"\s+")


def extract_otp(body: Optional[str]) -> Optional[str]:
    """
    Return the first substring of `body` that looks like a verification code.

    Whitespace runs (newlines included) are collapsed to one space before the
    scan, so a code wrapped across lines still matches. The match is returned
    verbatim, separator included. This over-matches order numbers and amounts;
    that is accepted.
    """
    if not body:
        return None
    clean = WHITESPACE.sub(" ", body)
    match = OTP_PATTERN.search(clean)
    return match.group(0) if match else None
