"""
Ordered registry of PII detectors.

Each detector is a presidio ``PatternRecognizer`` holding a single regular
pattern for one PII category. Detectors are evaluated in a fixed priority
order: the most syntactically specific categories (emails, IBANs, national
IDs) come before the looser ones (phone numbers, postcodes).
"""

import logging
from collections import namedtuple
from functools import partial

import regex
from presidio_analyzer import Pattern, PatternRecognizer

logger = logging.getLogger(__name__)

# presidio compiles patterns with the `regex` module; these are its flag values
CASE_INSENSITIVE = regex.DOTALL | regex.MULTILINE | regex.IGNORECASE
CASE_SENSITIVE = regex.DOTALL | regex.MULTILINE


class Detection(namedtuple("Detection", ["category", "value", "start"])):
    """One matched PII value and its offset in the scanned text."""

    __slots__ = ()

    @property
    def end(self):
        return self.start + len(self.value)


# ============================================================================
# Phone numbers: the international prefix is mandatory
# ============================================================================

def _phone(body):
    # No digit or '+' directly before the prefix, no digit directly after
    return r"(?<![\d+])" + body + r"(?!\d)"


PHONE_PATTERNS = {
    "NL": _phone(r"(?:\+31|0031)[\s.-]?[1-9](?:[\s.-]?\d){8}"),
    "DE": _phone(r"(?:\+49|0049)[\s.-]?\d{2,4}[\s.-]?\d{3,8}(?:[\s.-]?\d{1,4})?"),
    "FR": _phone(r"(?:\+33|0033)[\s.-]?[1-9](?:[\s.-]?\d{2}){4}"),
    "BE": _phone(r"(?:\+32|0032)[\s.-]?[1-9](?:[\s.-]?\d){7,8}"),
    "IT": _phone(r"(?:\+39|0039)[\s.-]?3\d{2}[\s.-]?\d{6,7}"),
    "ES": _phone(r"(?:\+34|0034)[\s.-]?[6-9]\d{2}[\s.-]?\d{3}[\s.-]?\d{3}"),
    "IE": _phone(r"(?:\+353|00353)[\s.-]?8[3-9][\s.-]?\d{3}[\s.-]?\d{4}"),
    "UK": _phone(r"(?:\+44|0044)[\s.-]?7\d{3}[\s.-]?\d{6}"),
}

# Only formats distinctive enough not to collide with ordinary numbers.
# DE/FR/IT/ES/BE use bare 4-5 digit codes and are left to the national IDs.
POSTCODE_PATTERNS = {
    # 1234 AB; SA, SD and SS are never issued
    "NL": r"\b[1-9]\d{3}\s?(?!SA|SD|SS)[A-Z]{2}\b",
    # SW1A 1AA, M1 1AE
    "UK": r"\b[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}\b",
    # Eircode: D02 AF30
    "IE": r"\b[A-Z]\d{2}\s?[A-Z0-9]{4}\b",
}

# Digit-only IDs must not start right after "+" or an international dial
# prefix, otherwise "+31 612 345 678" would be read as a BSN
_NOT_AFTER_DIAL_PREFIX = r"(?<!\+|(?:\+|(?<!\d)00)\d{1,3}[\s.-]?)"

NATIONAL_ID_PATTERNS = {
    # Italy: RSSMRA85A01H501Z
    "CODICE_FISCALE": r"\b[A-Z]{6}\d{2}[A-Z]\d{2}[A-Z]\d{3}[A-Z]\b",
    # UK National Insurance number: AB123456C
    "UK_NIN": r"\b[A-Z]{2}\d{6}[A-Z]\b",
    # Ireland PPS: 1234567FA
    "PPS": r"\b\d{7}[A-Z]{1,2}\b",
    # Spain NIF: 12345678Z
    "NIF": r"\b\d{8}[A-Z]\b",
    # Spain NIE: X1234567L
    "NIE": r"\b[XYZ]\d{7}[A-Z]\b",
    # France NIR: 1 85 01 75 123 456 78
    "NIR": r"\b[12]\s?\d{2}\s?\d{2}\s?\d{2}\s?\d{3}\s?\d{3}\s?\d{2}\b",
    # Belgium Rijksregisternummer: 85.01.01-123.45
    "RRN": _NOT_AFTER_DIAL_PREFIX + r"\b\d{2}[\s.-]?\d{2}[\s.-]?\d{2}[\s.-]?\d{3}[\s.-]?\d{2}\b",
    # Netherlands BSN: 123456789, 123.456.789
    "BSN": _NOT_AFTER_DIAL_PREFIX + r"\b\d{3}[\s.-]?\d{3}[\s.-]?\d{3}\b",
    # Germany Steuer-ID: 11 digits
    "STEUER_ID": _NOT_AFTER_DIAL_PREFIX + r"\b\d{11}\b",
}

EMAIL_PATTERN = r"[\w.%+-]+@[\w.-]+\.\w{2,}"

# Country code, check digits, then a BBAN of 8+ characters, compact or in
# groups of four
IBAN_PATTERN = r"\b[A-Z]{2}\d{2}(?:\s?[A-Z0-9]{4}){2,}(?:\s?[A-Z0-9]{1,4})?\b"


# ============================================================================
# Protected shapes: credentials and system identifiers that look like PII
# ============================================================================

PROTECTED_SHAPES = (
    ("slack_token", r"xox[bpars]-[\w-]+"),
    ("sentry_token", r"sntry[us]_\w+"),
    # Capitalised scheme, an opaque body of 20+ characters (JWT segments of
    # 8+), never an IBAN
    ("bearer_token", r"\bBearer\s+(?![A-Z]{2}\d{2}[A-Z0-9]{11,30}\b)"
                     r"[A-Za-z0-9\-_]{20,}(?:\.[A-Za-z0-9\-_]{8,})*=*(?![\w@+-]|\.\w)"),
    ("api_key", r"\bsk-[\w-]{16,}"),
    ("uuid", r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b"),
    ("hex_token", r"\b[a-fA-F0-9]{32,}\b"),
    # Ticketing brand and field IDs such as 12PHONE_NL_362
    ("system_id", r"\d{1,2}PHONE_[A-Z]{2}_\d{3,}"),
)


def is_whitelisted_email(email, domains=()):
    """Return True when the email belongs to (a subdomain of) a whitelisted domain."""
    domain = email.rpartition("@")[2].lower()
    return any(domain == d or domain.endswith("." + d) for d in domains)


class Detector(PatternRecognizer):
    """
    A single PII category: one pattern plus an optional disqualifying filter.

    The filter is wired into presidio's ``invalidate_result`` hook, so a
    disqualified match never leaves the recognizer.

    Args:
        category (str): Category id, also the token prefix (e.g. "EMAIL")
        pattern (str): Regular expression recognizing values of the category
        disqualify (callable): Optional predicate; True means "not PII"
        case_sensitive (bool): Match letters exactly instead of ignoring case
    """

    def __init__(self, category, pattern, disqualify=None, case_sensitive=False):
        self.category = category
        self.disqualify = disqualify
        super().__init__(
            supported_entity=category,
            name=f"{category.lower()}_detector",
            patterns=[Pattern(name=category.lower(), regex=pattern, score=1.0)],
            global_regex_flags=CASE_SENSITIVE if case_sensitive else CASE_INSENSITIVE,
        )

    def invalidate_result(self, pattern_text):
        if self.disqualify is None:
            return False
        return bool(self.disqualify(pattern_text))

    def find(self, text):
        """
        Scan text for values of this category.

        Returns:
            list: Detection tuples ordered by offset
        """
        results = self.analyze(text=text, entities=[self.category])
        return sorted(
            (Detection(self.category, text[r.start:r.end], r.start) for r in results),
            key=lambda d: d.start,
        )


class PatternRegistry:
    """
    Immutable, ordered set of detectors plus the protected shapes.

    A registry is built once per process and shared by every session; it
    holds no per-request state.
    """

    def __init__(self, detectors, protected_shapes=PROTECTED_SHAPES):
        self._detectors = tuple(detectors)
        self._protected = tuple(
            (name, regex.compile(shape))
            for name, shape in protected_shapes
        )

    @property
    def detectors(self):
        return self._detectors

    @property
    def categories(self):
        """Category ids in priority order."""
        return tuple(d.category for d in self._detectors)

    def protected_spans(self, text):
        """
        Locate substrings that must never be treated as PII.

        Shapes are matched case-sensitively and applied in order; a later
        shape overlapping an earlier span is ignored.

        Returns:
            list: Non-overlapping (start, end) pairs sorted by start
        """
        spans = []
        for _name, shape in self._protected:
            for match in shape.finditer(text):
                if not any(_overlaps(match.span(), span) for span in spans):
                    spans.append(match.span())
        return sorted(spans)

    def detect_all(self, text):
        """
        Run every detector against the same original text.

        Detectors do not consume text: overlapping matches from different
        categories are all reported. Disqualified values and matches touching
        a protected span are left out.

        Args:
            text (str): Text to scan

        Returns:
            list: Detection tuples, grouped by detector priority and ordered by
                  offset within each detector

        Example:
            >>> DEFAULT_REGISTRY.detect_all("Contact: jan@example.com")
            [Detection(category='EMAIL', value='jan@example.com', start=9)]
        """
        if not text or not isinstance(text, str):
            return []

        protected = self.protected_spans(text)
        found = []
        for detector in self._detectors:
            for detection in detector.find(text):
                span = (detection.start, detection.end)
                if any(_overlaps(span, p) for p in protected):
                    continue
                found.append(detection)

        logger.debug("Detected %d candidate PII spans", len(found))
        return found


def _overlaps(a, b):
    return a[0] < b[1] and b[0] < a[1]


def build_detectors(whitelisted_domains=()):
    """Default detectors in priority order."""
    domains = tuple(d.lower() for d in whitelisted_domains)
    detectors = [
        Detector("EMAIL", EMAIL_PATTERN,
                 disqualify=partial(is_whitelisted_email, domains=domains)),
        Detector("IBAN", IBAN_PATTERN),
    ]
    detectors += [
        Detector(category, pattern)
        for category, pattern in NATIONAL_ID_PATTERNS.items()
    ]
    detectors += [
        Detector(f"PHONE_{country}", pattern)
        for country, pattern in PHONE_PATTERNS.items()
    ]
    detectors += [
        Detector(f"POSTCODE_{country}", pattern, case_sensitive=True)
        for country, pattern in POSTCODE_PATTERNS.items()
    ]
    return detectors


def build_registry(whitelisted_domains=(), protected_shapes=PROTECTED_SHAPES, detectors=None):
    """
    Build a registry from static configuration.

    Args:
        whitelisted_domains (iterable): Email domains used for service
            accounts; addresses on them are never pseudonymized
        protected_shapes (tuple): (name, pattern) pairs shielded from detection
        detectors (list): Replace the default detectors entirely

    Returns:
        PatternRegistry: The immutable registry
    """
    if detectors is None:
        detectors = build_detectors(whitelisted_domains)
    return PatternRegistry(detectors, protected_shapes)


DEFAULT_REGISTRY = build_registry()
