import logging
import uuid
from collections import Counter

import regex

from pii_proxy.patterns import DEFAULT_REGISTRY

logger = logging.getLogger(__name__)


def _token_pattern(tokens):
    # Longest first, and never stop inside a longer number: EMAIL_1 must not
    # match the start of EMAIL_12
    alternatives = "|".join(regex.escape(t) for t in sorted(tokens, key=len, reverse=True))
    return regex.compile(f"(?:{alternatives})(?![0-9])")


def _overlaps(a, b):
    return a[0] < b[1] and b[0] < a[1]


def _mask(text, spans):
    """Blank out spans with spaces; offsets are unchanged."""
    chars = list(text)
    for start, end in spans:
        chars[start:end] = " " * (end - start)
    return "".join(chars)


def _substitute(text, claimed, replacements):
    """
    Apply (start, end, token) replacements to text.

    Returns the new text and the claimed spans (the old ones plus the new
    tokens) moved to their offsets in it.
    """
    edits = sorted([(start, end, None) for start, end in claimed] + list(replacements),
                   key=lambda edit: edit[0])

    pieces = []
    spans = []
    position = 0
    length = 0
    for start, end, token in edits:
        kept = text[start:end] if token is None else token
        length += start - position
        spans.append((length, length + len(kept)))
        length += len(kept)
        pieces.append(text[position:start])
        pieces.append(kept)
        position = end
    pieces.append(text[position:])
    return "".join(pieces), spans


class ProtectedSpans:
    """
    Placeholders for substrings that must never be treated as PII.

    Lives for a single ``pseudonymize`` call. Placeholders carry a random
    nonce so they cannot collide with text already present in the input.

    Args:
        registry (PatternRegistry): Source of the protected shapes
        text (str): Original input text
    """

    def __init__(self, registry, text):
        self.originals = {}
        self.spans = []
        prefix = f"__PROTECTED_{uuid.uuid4().hex[:8]}_"

        pieces = []
        position = 0
        length = 0
        for start, end in registry.protected_spans(text):
            placeholder = f"{prefix}{len(self.originals)}__"
            self.originals[placeholder] = text[start:end]
            length += start - position
            self.spans.append((length, length + len(placeholder)))
            length += len(placeholder)
            pieces.append(text[position:start])
            pieces.append(placeholder)
            position = end
        pieces.append(text[position:])
        self.text = "".join(pieces)

    def restore(self, text):
        for placeholder, original in self.originals.items():
            text = text.replace(placeholder, original)
        return text


class Pseudonymizer:
    """
    Replaces PII with typed, numbered tokens and restores it afterwards.

    One instance per request: it owns the token <-> value mapping and the
    per-category counters for that exchange only, and is discarded once the
    response has been restored.

    Tokens look like ``EMAIL_1``, ``BSN_2``, ``PHONE_NL_1``. A value seen again
    in the same session always gets the token it received first.

    Example:
        >>> p = Pseudonymizer()
        >>> p.pseudonymize("Contact: jan@example.com")
        'Contact: EMAIL_1'
        >>> p.depseudonymize("Mail EMAIL_1 today")
        'Mail jan@example.com today'
    """

    def __init__(self, registry=DEFAULT_REGISTRY):
        self.registry = registry
        self.counters = {category: 0 for category in registry.categories}
        self._token_to_value = {}
        self._value_to_token = {}
        self._token_categories = {}
        self._restore_pattern = None

    @property
    def categories(self):
        return self.registry.categories

    @property
    def mappings(self):
        """Copy of the token -> original value mapping, in allocation order."""
        return dict(self._token_to_value)

    def token_for(self, value):
        return self._value_to_token.get(value)

    def pseudonymize(self, text):
        """
        Replace every detected PII value in text with its token.

        Detectors run in priority order over one snapshot of the text (after
        protected spans have been swapped out). A detector that comes first
        keeps its spans; they are blanked for the detectors after it, so a
        looser match that would have run into one (``+49 30 1234567 123``
        into the BSN ``123.456.789``) is still found for the part outside.
        Substitution happens by position once a pass is complete, and the
        result is scanned again, tokens and placeholders claimed, until a pass
        finds nothing new.

        Args:
            text (str): Input text; anything that is not a non-empty string is
                        returned unchanged

        Returns:
            str: Text with PII replaced by tokens
        """
        if not text or not isinstance(text, str):
            return text

        protected = ProtectedSpans(self.registry, text)
        result = protected.text

        claimed = list(protected.spans)
        if self._token_to_value:
            # Tokens from an earlier call in this session are never rescanned
            for match in self._restore().finditer(result):
                if not any(_overlaps(match.span(), span) for span in claimed):
                    claimed.append(match.span())

        total = 0
        while True:
            selected = self._select(result, claimed)
            if not selected:
                break
            replacements = [
                (d.start, d.end, self._allocate(d.category, d.value, text))
                for d in selected
            ]
            result, claimed = _substitute(result, claimed, replacements)
            total += len(replacements)

        if not total:
            return text

        logger.debug("Pseudonymized %d PII spans", total)
        return protected.restore(result)

    def _select(self, snapshot, claimed):
        claimed = list(claimed)
        selected = []
        for detector in self.registry.detectors:
            # Claimed text is blanked, so a looser pattern that ran into it
            # still matches the part outside
            for detection in detector.find(_mask(snapshot, claimed)):
                # Never re-tokenize a token emitted earlier in this session
                if detection.value in self._token_to_value:
                    continue
                span = (detection.start, detection.end)
                if any(_overlaps(span, c) for c in claimed):
                    continue
                claimed.append(span)
                selected.append(detection)
        return selected

    def depseudonymize(self, text):
        """
        Put the original values back in place of this session's tokens.

        Token-shaped text that this session never issued is left alone.

        Args:
            text (str): Text that may contain tokens

        Returns:
            str: Text with tokens replaced by the original values
        """
        if not text or not isinstance(text, str):
            return text

        if not self._token_to_value:
            return text

        return self._restore().sub(lambda m: self._token_to_value[m.group(0)], text)

    def _restore(self):
        if self._restore_pattern is None:
            self._restore_pattern = _token_pattern(self._token_to_value)
        return self._restore_pattern

    def get_stats(self):
        """Number of distinct values redacted, overall and per category."""
        return {
            "total_count": len(self._token_to_value),
            "per_category_count": dict(Counter(self._token_categories.values())),
        }

    def _allocate(self, category, value, text):
        token = self._value_to_token.get(value)
        if token is not None:
            return token

        # Skip numbers whose token already appears literally in the input, so
        # restoring cannot touch text that was never PII
        while True:
            self.counters[category] = self.counters.get(category, 0) + 1
            token = f"{category}_{self.counters[category]}"
            if not _token_pattern([token]).search(text):
                break

        self._token_to_value[token] = value
        self._value_to_token[value] = token
        self._token_categories[token] = category
        self._restore_pattern = None
        return token
