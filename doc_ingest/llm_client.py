"""
Text generation client used for boundary repair, titles and summaries.
"""

import logging
from typing import Optional

import openai
from google.api_core import exceptions as google_exceptions
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from . import config
from .exceptions import DependencyUnavailable

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    ConnectionError,
    TimeoutError,
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.ResourceExhausted,
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)


def is_transient_error(error: BaseException) -> bool:
    """
    True for transport/timeout-class errors worth retrying.

    Auth and other client errors are never retried.
    """
    return isinstance(error, TRANSIENT_ERRORS)


class TextGenerationClient:
    """
    Client for text-only generation against Gemini or OpenAI models.

    The backend is picked from the model name, the same way for both the
    generation and embedding paths.
    """

    def __init__(
        self,
        model_name: str = config.GENERATION_MODEL,
        api_key: Optional[str] = None,
        max_tokens: int = config.GENERATION_MAX_OUTPUT_TOKENS,
        temperature: float = config.GENERATION_TEMPERATURE,
    ):
        """
        Initialize the text generation client.

        Args:
            model_name: Name of the model to use
            api_key: API key for the model provider
            max_tokens: Default maximum tokens in a response
            temperature: Default temperature (lower = more deterministic)
        """
        self.model_name = model_name
        if "gemini" in model_name.lower():
            self.api_key = api_key or config.GEMINI_API_KEY
        else:
            self.api_key = api_key or config.OPENAI_API_KEY

        if not self.api_key:
            raise ValueError(
                "API key not provided. Set it in the constructor or "
                "as GEMINI_API_KEY/GOOGLE_API_KEY or OPENAI_API_KEY environment variable."
            )

        self.max_tokens = max_tokens
        self.temperature = temperature
        self._init_client()

    @property
    def is_gemini(self) -> bool:
        return "gemini" in self.model_name.lower()

    def _init_client(self):
        """Initialize the appropriate client based on model name."""
        if self.is_gemini:
            self._init_gemini_client()
        else:
            self._init_openai_client()

    def _init_gemini_client(self):
        """Initialize Google Gemini client."""
        try:
            import google.generativeai as genai

            genai.configure(api_key=self.api_key)
            self.client = genai
            self.model = genai.GenerativeModel(model_name=self.model_name)
            logger.info(f"Initialized Gemini client with model: {self.model_name}")
        except ImportError:
            raise ImportError(
                "google-generativeai package not installed. "
                "Install it with: pip install google-generativeai"
            )

    def _init_openai_client(self):
        """Initialize OpenAI client."""
        try:
            from openai import OpenAI

            self.client = OpenAI(api_key=self.api_key)
            self.model = self.model_name
            logger.info(f"Initialized OpenAI client with model: {self.model_name}")
        except ImportError:
            raise ImportError(
                "openai package not installed. "
                "Install it with: pip install openai"
            )

    @retry(
        stop=stop_after_attempt(config.AI_RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        retry=retry_if_exception(is_transient_error),
        reraise=True,
    )
    def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Generate text for a prompt.

        Args:
            prompt: Full prompt text
            temperature: Override the default temperature
            max_tokens: Override the default response length

        Returns:
            Generated text, stripped
        """
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens

        if self.is_gemini:
            return self._call_gemini_api(prompt, temperature, max_tokens)
        return self._call_openai_api(prompt, temperature, max_tokens)

    def _call_gemini_api(self, prompt: str, temperature: float, max_tokens: int) -> str:
        try:
            response = self.model.generate_content(
                prompt,
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": max_tokens,
                    "top_p": 0.1 if temperature == 0 else 0.95,
                },
            )

            if not hasattr(response, "text"):
                raise ValueError(f"Unexpected response format: {response}")

            return response.text.strip()

        except Exception as e:
            logger.error(f"Error calling Gemini API: {str(e)}")
            raise

    def _call_openai_api(self, prompt: str, temperature: float, max_tokens: int) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )

            return (response.choices[0].message.content or "").strip()

        except Exception as e:
            logger.error(f"Error calling OpenAI API: {str(e)}")
            raise


def create_text_client(model_name: str = config.GENERATION_MODEL) -> Optional[TextGenerationClient]:
    """
    Build a client if credentials are configured.

    Returns None when no API key is available, so callers can run with
    deterministic fallbacks only.
    """
    try:
        return TextGenerationClient(model_name=model_name)
    except ValueError as e:
        logger.warning(f"Text generation disabled: {e}")
        return None


def require_client(client: Optional[TextGenerationClient], service: str = "TextGeneration") -> TextGenerationClient:
    """Raise DependencyUnavailable when no client is configured."""
    if client is None:
        raise DependencyUnavailable(service, "no text generation client configured")
    return client
