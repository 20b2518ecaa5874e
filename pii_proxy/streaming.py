import logging

import regex

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 20

_DIGITS = regex.compile(r"[0-9]*")


class StreamingDepseudonymizer:
    """
    Safely restore PII tokens in streaming text without exposing partial tokens.

    A streamed response can split a token anywhere, e.g. ``"...EMA"`` then
    ``"IL_1..."``. Each chunk is appended to a buffer; whatever trailing part
    of the buffer could still grow into a token is held back, and everything
    before it is restored and released.

    A suffix is held back when it is a prefix of ``"{CATEGORY}_"`` or is
    ``"{CATEGORY}_"`` followed only by digits (``EMAIL_1`` at the very end
    may still become ``EMAIL_12``). Only the trailing ``window`` characters
    are examined.

    Example:
        >>> streamer = StreamingDepseudonymizer(pseudonymizer)
        >>> for chunk in llm_stream:
        ...     print(streamer.process_chunk(chunk), end='', flush=True)
        >>> print(streamer.finalize(), end='', flush=True)
    """

    def __init__(self, pseudonymizer, window=None):
        """
        Initialize the streaming buffer.

        Args:
            pseudonymizer (Pseudonymizer): Session whose tokens are restored
            window (int): Number of trailing characters scanned for a partial
                          token; defaults to enough for the longest category
        """
        self.pseudonymizer = pseudonymizer
        self.buffer = ""
        self.prefixes = tuple(f"{category}_" for category in pseudonymizer.categories)

        if window is None:
            longest = max((len(p) for p in self.prefixes), default=0)
            window = max(DEFAULT_WINDOW, longest + 8)
        self.window = window

    def process_chunk(self, chunk):
        """
        Add a chunk to the buffer and return the text that is safe to emit.

        Args:
            chunk (str): New text delta from the model stream

        Returns:
            str: Restored text; empty when everything is being held back
        """
        if not chunk:
            return ""

        self.buffer += chunk

        cutoff = self._safe_end()
        safe_text = self.buffer[:cutoff]
        self.buffer = self.buffer[cutoff:]

        if self.buffer:
            logger.debug("Holding back %d characters of a possible token", len(self.buffer))

        return self.pseudonymizer.depseudonymize(safe_text)

    def finalize(self):
        """
        Flush the remaining buffer at the end of the stream.

        Nothing else will arrive to complete a held-back token, so the whole
        remainder is restored and released.

        Returns:
            str: Final buffered text with tokens restored
        """
        result = self.pseudonymizer.depseudonymize(self.buffer)
        self.buffer = ""
        return result

    on_chunk = process_chunk
    flush = finalize

    def _safe_end(self):
        first = max(0, len(self.buffer) - self.window)
        for index in range(first, len(self.buffer)):
            if self._could_become_token(self.buffer[index:]):
                return index
        return len(self.buffer)

    def _could_become_token(self, tail):
        for prefix in self.prefixes:
            if prefix.startswith(tail):
                return True
            if tail.startswith(prefix) and _DIGITS.fullmatch(tail, len(prefix)):
                return True
        return False
