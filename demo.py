#!/usr/bin/env python3
"""
Demo script to process CSV file with PII pseudonymization.
"""

import sys

from pii_proxy.config import Settings, configure_logging
from pii_proxy.patterns import build_registry
from pii_proxy.processor import RequestProcessor

settings = Settings.from_env()
configure_logging(settings.log_level)

if not settings.api_key:
    print("ERROR: OPENAI_API_KEY not found in .env file")
    sys.exit(1)

processor = RequestProcessor(
    api_key=settings.api_key,
    model=settings.model,
    registry=build_registry(whitelisted_domains=settings.whitelisted_domains),
)

print("\n" + "="*80)
print("PII PSEUDONYMIZATION DEMO - Processing CSV File")
print("="*80)

results = processor.process_csv("data/requests.csv")

print(f"\nProcessing complete! Processed {len(results)} requests.")
