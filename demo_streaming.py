#!/usr/bin/env python3
"""
Streaming demo for the PII pseudonymization proxy.

Processes requests from CSV file with real-time streaming output
and safe PII restoration.
"""

import sys
import time
import pandas as pd
from pii_proxy.config import Settings, configure_logging
from pii_proxy.patterns import build_registry
from pii_proxy.processor import RequestProcessor

settings = Settings.from_env()
configure_logging(settings.log_level)

if not settings.api_key:
    print("ERROR: OPENAI_API_KEY not found in .env file")
    sys.exit(1)


def process_csv_streaming(csv_path):
    """Process CSV file with streaming output."""
    processor = RequestProcessor(
        api_key=settings.api_key,
        model=settings.model,
        registry=build_registry(whitelisted_domains=settings.whitelisted_domains),
    )

    df = pd.read_csv(csv_path)

    if 'system_prompt' not in df.columns or 'prompt' not in df.columns:
        raise ValueError(
            f"CSV must contain 'system_prompt' and 'prompt' columns. "
            f"Found: {list(df.columns)}"
        )

    print(f"\nProcessing {len(df)} requests from {csv_path}...\n")

    successful = 0
    failed = 0

    for idx, row in df.iterrows():
        system_prompt = str(row['system_prompt']) if pd.notna(row['system_prompt']) else ""
        user_prompt = str(row['prompt']) if pd.notna(row['prompt']) else ""

        print(f"\n{'='*80}")
        print(f"REQUEST {idx + 1}/{len(df)}")
        print(f"{'='*80}")

        print(f"\n[ORIGINAL PROMPTS]:")
        print(f"System: {system_prompt[:100]}{'...' if len(system_prompt) > 100 else ''}")
        print(f"User:   {user_prompt[:100]}{'...' if len(user_prompt) > 100 else ''}")

        for item in processor.process_request_stream(system_prompt, user_prompt):
            if item['type'] == 'metadata':
                if item['mappings']:
                    print(f"\n[PII DETECTED & PSEUDONYMIZED]:")
                    for token, original in item['mappings'].items():
                        print(f"  {token} -> {original}")
                else:
                    print(f"\n[INFO] No PII detected in prompts")

                print(f"\n[STREAMING LLM RESPONSE]:")
                print("-" * 80)

            elif item['type'] == 'chunk':
                print(item['content'], end='', flush=True)
                # Small delay to make the streaming visible
                time.sleep(0.02)

            elif item['type'] == 'final':
                print()
                print("-" * 80)
                successful += 1

            elif item['type'] == 'error':
                print(f"\n[ERROR]: {item['error']}")
                print("-" * 80)
                failed += 1

    print(f"\n{'='*80}")
    print(f"SUMMARY")
    print(f"{'='*80}")
    print(f"Total requests: {len(df)}")
    print(f"Successful: {successful}")
    print(f"Failed: {failed}")


if __name__ == "__main__":
    print("\n" + "="*80)
    print("PII PSEUDONYMIZATION PROXY - STREAMING DEMO")
    print("="*80)
    print("\nThis demo processes requests from CSV with real-time streaming:")
    print("  - PII is replaced by tokens like EMAIL_1 before the LLM sees it")
    print("  - Tokens split across chunks are never shown half-restored")

    try:
        process_csv_streaming("data/requests.csv")
        print("\n\nStreaming demo completed successfully!")

    except KeyboardInterrupt:
        print("\n\nDemo interrupted by user.")
        sys.exit(0)
    except Exception as e:
        print(f"\n\nDemo failed with error: {str(e)}")
        sys.exit(1)
