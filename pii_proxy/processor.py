import logging
import time

import pandas as pd

from pii_proxy.llm_client import LLMClient
from pii_proxy.patterns import DEFAULT_REGISTRY
from pii_proxy.payload import depseudonymize_response, pseudonymize_messages
from pii_proxy.pseudonymizer import Pseudonymizer
from pii_proxy.streaming import StreamingDepseudonymizer

logger = logging.getLogger(__name__)


def build_messages(system_prompt, user_prompt):
    """Chat messages for a system + user prompt pair (empty system prompt is dropped)."""
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": user_prompt})
    return messages


class RequestProcessor:
    """
    Orchestrates the complete pseudonymization pipeline for chat requests.

    Handles:
    1. Pseudonymizing every text-bearing part of the request
    2. Sending the pseudonymized messages to the LLM
    3. Restoring PII in the response, whole or streamed
    4. Batch processing of requests from CSV

    Each request gets its own Pseudonymizer, so PII linkage never outlives the
    request it was extracted from.
    """

    def __init__(self, api_key, model="gpt-4o-mini", registry=DEFAULT_REGISTRY):
        """
        Initialize the request processor.

        Args:
            api_key (str): OpenAI API key
            model (str): OpenAI model to use (default: gpt-4o-mini)
            registry (PatternRegistry): Detectors shared by all requests
        """
        self.registry = registry
        self.llm_client = LLMClient(api_key=api_key, model=model)

    def _pseudonymize(self, messages):
        pseudonymizer = Pseudonymizer(self.registry)
        redacted = pseudonymize_messages(messages, pseudonymizer)

        stats = pseudonymizer.get_stats()
        if stats["total_count"] > 0:
            logger.info("[PII] Redacted %d items: %s", stats["total_count"], stats["per_category_count"])

        return pseudonymizer, redacted

    def process_messages(self, messages):
        """
        Process one chat request through the complete pipeline.

        Args:
            messages (list): Chat messages (may contain PII)

        Returns:
            dict: Result containing all pipeline stages:
                - original_messages: Messages as received
                - redacted_messages: Messages sent to the LLM
                - mappings: Token -> original value for this request
                - stats: Redaction counts
                - llm_response_redacted: LLM response (may contain tokens)
                - final_response: LLM response with PII restored
                - error: Error message if processing failed (None on success)
        """
        start = time.monotonic()
        try:
            pseudonymizer, redacted = self._pseudonymize(messages)

            llm_response = self.llm_client.complete(redacted)
            final_response = depseudonymize_response(llm_response, pseudonymizer)

            logger.info("[Proxy] Request completed in %dms", (time.monotonic() - start) * 1000)

            return {
                'original_messages': messages,
                'redacted_messages': redacted,
                'mappings': pseudonymizer.mappings,
                'stats': pseudonymizer.get_stats(),
                'llm_response_redacted': llm_response,
                'final_response': final_response,
                'error': None
            }

        except Exception as e:
            logger.error("[Proxy] Error: %s", e)
            return {
                'original_messages': messages,
                'redacted_messages': None,
                'mappings': None,
                'stats': None,
                'llm_response_redacted': None,
                'final_response': None,
                'error': str(e)
            }

    def process_request(self, system_prompt, user_prompt):
        """
        Process a system + user prompt pair.

        Example:
            >>> processor = RequestProcessor(api_key="sk-...")
            >>> result = processor.process_request(
            ...     system_prompt="You are a helpful assistant.",
            ...     user_prompt="Email jan@example.com"
            ... )
            >>> print(result['final_response'])
        """
        result = self.process_messages(build_messages(system_prompt, user_prompt))
        result['original_system'] = system_prompt
        result['original_user'] = user_prompt
        return result

    def process_messages_stream(self, messages):
        """
        Process one chat request, streaming the restored response.

        Yields:
            dict: Events in order:
                - 'metadata': redacted_messages, mappings, stats
                - 'chunk': content (restored text, safe to show)
                - 'final': complete redacted and restored responses
                - 'error': error message, ends the stream
        """
        try:
            pseudonymizer, redacted = self._pseudonymize(messages)
        except Exception as e:
            logger.error("[Streaming] Error: %s", e)
            yield {'type': 'error', 'original_messages': messages, 'error': str(e)}
            return

        yield {
            'type': 'metadata',
            'original_messages': messages,
            'redacted_messages': redacted,
            'mappings': pseudonymizer.mappings,
            'stats': pseudonymizer.get_stats(),
            'error': None
        }

        streamer = StreamingDepseudonymizer(pseudonymizer)
        full_response = ""
        try:
            for delta in self.llm_client.complete_stream(redacted):
                full_response += delta
                safe_output = streamer.process_chunk(delta)
                if safe_output:
                    yield {'type': 'chunk', 'content': safe_output, 'error': None}

        except Exception as e:
            logger.error("[Streaming] Error: %s", e)
            yield {'type': 'error', 'original_messages': messages, 'error': str(e)}
            return

        final_chunk = streamer.finalize()
        if final_chunk:
            yield {'type': 'chunk', 'content': final_chunk, 'error': None}

        yield {
            'type': 'final',
            'llm_response_redacted': full_response,
            'final_response': pseudonymizer.depseudonymize(full_response),
            'error': None
        }

    def process_request_stream(self, system_prompt, user_prompt):
        """Streaming variant of process_request; see process_messages_stream."""
        for item in self.process_messages_stream(build_messages(system_prompt, user_prompt)):
            if item['type'] == 'metadata':
                item['original_system'] = system_prompt
                item['original_user'] = user_prompt
            yield item

    def process_csv(self, csv_path):
        """
        Process all requests from a CSV file.

        CSV Format:
            system_prompt,prompt
            "You are a helpful assistant","Email jan@example.com"

        Args:
            csv_path (str): Path to CSV file containing requests

        Returns:
            list: List of result dictionaries (one per request)
        """
        try:
            df = pd.read_csv(csv_path)

            if 'system_prompt' not in df.columns or 'prompt' not in df.columns:
                raise ValueError(
                    f"CSV must contain 'system_prompt' and 'prompt' columns. "
                    f"Found: {list(df.columns)}"
                )

            results = []

            for idx, row in df.iterrows():
                request_num = idx + 1
                system_prompt = str(row['system_prompt']) if pd.notna(row['system_prompt']) else ""
                user_prompt = str(row['prompt']) if pd.notna(row['prompt']) else ""

                print(f"\n{'='*80}")
                print(f"REQUEST {request_num}/{len(df)}")
                print(f"{'='*80}")

                result = self.process_request(system_prompt, user_prompt)
                results.append(result)

                if result['error']:
                    print(f"\n[ERROR]: {result['error']}")
                else:
                    self._display_result(result)

            print(f"\n{'='*80}")
            print(f"SUMMARY")
            print(f"{'='*80}")
            successful = sum(1 for r in results if r['error'] is None)
            print(f"Total requests: {len(results)}")
            print(f"Successful: {successful}")
            print(f"Failed: {len(results) - successful}")

            return results

        except Exception as e:
            logger.error("Failed to process CSV %s: %s", csv_path, e)
            raise

    def _display_result(self, result):
        print(f"\n[ORIGINAL PROMPTS]:")
        print(f"System: {result['original_system'][:100]}{'...' if len(result['original_system']) > 100 else ''}")
        print(f"User:   {result['original_user'][:100]}{'...' if len(result['original_user']) > 100 else ''}")

        if result['mappings']:
            print(f"\n[PII DETECTED & PSEUDONYMIZED]:")
            for token, original in result['mappings'].items():
                print(f"  {token} -> {original}")

            print(f"\n[PSEUDONYMIZED PROMPT - sent to LLM]:")
            user_message = result['redacted_messages'][-1]['content']
            print(f"User:   {user_message[:100]}{'...' if len(user_message) > 100 else ''}")
        else:
            print(f"\n[INFO] No PII detected in prompts")

        print(f"\n[LLM RESPONSE - with tokens]:")
        print(f"{result['llm_response_redacted']}")

        print(f"\n[FINAL RESPONSE - restored]:")
        print(f"{result['final_response']}")
