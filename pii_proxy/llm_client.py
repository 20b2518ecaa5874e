from openai import OpenAI


class LLMClientError(Exception):
    """Raised when the remote model provider call fails."""


class LLMClient:
    """
    A simple wrapper for OpenAI API to send chat messages and receive completions.

    The client only ever sees pseudonymized messages; tokens such as
    ``EMAIL_1`` are passed through to the model as ordinary text.
    """

    def __init__(self, api_key, model="gpt-4o-mini"):
        """
        Initialize the LLM client.

        Args:
            api_key (str): OpenAI API key
            model (str): Model to use (default: "gpt-4o-mini")
        """
        self.client = OpenAI(api_key=api_key)
        self.model = model

    def complete(self, messages):
        """
        Send messages to OpenAI and get the completion text.

        Args:
            messages (list): Chat messages, e.g.
                [{"role": "system", "content": "..."}, {"role": "user", "content": "..."}]

        Returns:
            str: The completion text from the LLM

        Raises:
            LLMClientError: If API call fails

        Example:
            >>> client = LLMClient(api_key="sk-...")
            >>> client.complete([{"role": "user", "content": "Mail EMAIL_1"}])
            "I'll send it to EMAIL_1."
        """
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages
            )

            return response.choices[0].message.content

        except Exception as e:
            raise LLMClientError(f"OpenAI API call failed: {str(e)}") from e

    def complete_stream(self, messages):
        """
        Send messages to OpenAI and yield the completion as it arrives.

        Use with StreamingDepseudonymizer so tokens split across deltas are
        never shown half-restored.

        Args:
            messages (list): Chat messages

        Yields:
            str: Non-empty text deltas from the LLM

        Raises:
            LLMClientError: If API call fails
        """
        try:
            stream = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                stream=True
            )

            for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content

        except Exception as e:
            raise LLMClientError(f"OpenAI API streaming call failed: {str(e)}") from e
