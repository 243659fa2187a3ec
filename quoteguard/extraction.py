"""
Quote text extraction from search snippets.
"""

import re

MIN_QUOTE_LENGTH = 20
MAX_SNIPPET_LENGTH = 300

SPEECH_INDICATORS = ("said:", "wrote:", "stated:", "declared:", "remarked:")

_DOUBLE_QUOTED = re.compile(r'["“]([^"“”]+)["”]')
_SINGLE_QUOTED = re.compile(r"'([^']+)'")
_SENTENCE_END = re.compile(r"[.!?]")


def extract_quote(snippet: str) -> str | None:
    """
    Pull the most quote-like text out of a search snippet.

    Tries, in order: double-quoted text, single-quoted text, the sentence
    after a speech indicator such as "said:", and finally the snippet itself
    when it is of a plausible length.
    """
    if not snippet:
        return None

    for pattern in (_DOUBLE_QUOTED, _SINGLE_QUOTED):
        match = pattern.search(snippet)
        if match and len(match.group(1)) > MIN_QUOTE_LENGTH:
            return match.group(1).strip()

    lowered = snippet.lower()
    for indicator in SPEECH_INDICATORS:
        index = lowered.find(indicator)
        if index == -1:
            continue
        after = snippet[index + len(indicator) :].strip()
        end = _SENTENCE_END.search(after)
        if end and end.start() > MIN_QUOTE_LENGTH:
            return after[: end.start() + 1].strip()

    if MIN_QUOTE_LENGTH < len(snippet) < MAX_SNIPPET_LENGTH:
        return snippet.strip()

    return None
