"""
Apply pseudonymization to chat payloads.

Message content is either a plain string or a list of typed parts. Text
parts are pseudonymized, and so are tool results, whose content can itself be
a string or a list of text parts. Images and other part types pass through.
Input structures are never modified in place.
"""

import logging

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 80


def _preview(text):
    return text[:PREVIEW_LENGTH] + ("..." if len(text) > PREVIEW_LENGTH else "")


def _pseudonymize_text(text, pseudonymizer, where):
    redacted = pseudonymizer.pseudonymize(text)
    if redacted != text:
        logger.debug("[PII] %s redacted: %r", where, _preview(redacted))
    return redacted


def pseudonymize_content(content, pseudonymizer):
    """
    Pseudonymize the text inside one message's content.

    Args:
        content (str | list): Message content
        pseudonymizer (Pseudonymizer): Session for the current request

    Returns:
        Same shape as the input, with text replaced
    """
    if isinstance(content, str):
        return _pseudonymize_text(content, pseudonymizer, "Text")

    if not isinstance(content, list):
        return content

    parts = []
    for part in content:
        if not isinstance(part, dict):
            parts.append(part)
        elif part.get("type") == "text" and isinstance(part.get("text"), str):
            parts.append({**part, "text": _pseudonymize_text(part["text"], pseudonymizer, "Block text")})
        elif part.get("type") == "tool_result":
            parts.append(_pseudonymize_tool_result(part, pseudonymizer))
        else:
            parts.append(part)
    return parts


def _pseudonymize_tool_result(part, pseudonymizer):
    inner = part.get("content")

    if isinstance(inner, str):
        return {**part, "content": _pseudonymize_text(inner, pseudonymizer, "Tool result")}

    if isinstance(inner, list):
        items = []
        for item in inner:
            if isinstance(item, dict) and item.get("type") == "text" and item.get("text"):
                item = {**item, "text": _pseudonymize_text(item["text"], pseudonymizer, "Tool result array")}
            items.append(item)
        return {**part, "content": items}

    return part


def pseudonymize_messages(messages, pseudonymizer):
    """Pseudonymize every message of a chat request; returns new message dicts."""
    return [
        {**message, "content": pseudonymize_content(message.get("content"), pseudonymizer)}
        if "content" in message else dict(message)
        for message in messages
    ]


def depseudonymize_response(response, pseudonymizer):
    """
    Restore PII in a complete (non-streaming) model response.

    Args:
        response (str | dict): Response text, or a response dict whose
            ``content`` is a list of typed parts

    Returns:
        Same shape as the input, with tokens replaced in every text part
    """
    if isinstance(response, str):
        return pseudonymizer.depseudonymize(response)

    if not isinstance(response, dict) or not isinstance(response.get("content"), list):
        return response

    content = [
        {**part, "text": pseudonymizer.depseudonymize(part.get("text"))}
        if isinstance(part, dict) and part.get("type") == "text" else part
        for part in response["content"]
    ]
    return {**response, "content": content}
