"""
PII Pseudonymization Proxy

A Python library that replaces PII (Personally Identifiable Information) in
chat requests with typed tokens before they reach a remote LLM, then restores
the original values in the response, including streamed responses.
"""

from .patterns import DEFAULT_REGISTRY, Detection, Detector, PatternRegistry, build_registry
from .pseudonymizer import Pseudonymizer
from .streaming import StreamingDepseudonymizer
from .llm_client import LLMClient, LLMClientError
from .processor import RequestProcessor

__all__ = [
    'DEFAULT_REGISTRY',
    'Detection',
    'Detector',
    'PatternRegistry',
    'build_registry',
    'Pseudonymizer',
    'StreamingDepseudonymizer',
    'LLMClient',
    'LLMClientError',
    'RequestProcessor',
]
