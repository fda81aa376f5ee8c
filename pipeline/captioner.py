"""
AI captioning module for the pipeline.

Asks an OpenAI vision model for a short (3-6 word) caption suitable for
display on a frame. Captioning is optional: without OPENAI_API_KEY, or
when the API call fails, caption() returns None.
"""

import base64
import logging
import os

from dotenv import load_dotenv
from openai import OpenAI

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"

CAPTION_PROMPT = (
    "Describe this photo in 3-6 words for a digital frame caption. "
    "Focus on the subject, activity, or mood. Be poetic but concise. "
    'Examples: "Kids playing in autumn leaves", "Golden hour on the beach", '
    '"Birthday candles and laughter", "Quiet morning with coffee". '
    "Just give the caption, nothing else."
)


def clean_caption(raw: str | None) -> str | None:
    """Strip whitespace, wrapping quotes and a trailing period."""
    if not raw:
        return None
    caption = raw.strip().strip('"“”\'').strip()
    if caption.endswith(".") and not caption.endswith("..."):
        caption = caption[:-1].rstrip()
    return caption or None


class Captioner:
    """
    AI-powered image captioning using the OpenAI Vision API.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        detail: str = "low",
        max_tokens: int = 150,
        client: OpenAI | None = None,
    ):
        """
        Initialize captioner.

        Args:
            api_key: OpenAI API key. If None, reads from OPENAI_API_KEY.
            model: OpenAI model to use. If None, reads from
                   OPENAI_CAPTION_MODEL, defaulting to gpt-4o-mini.
            detail: Image detail level for API ("low", "high", "auto").
            max_tokens: Response token limit.
            client: Preconfigured OpenAI client (overrides api_key).
        """
        self.model = model or os.getenv("OPENAI_CAPTION_MODEL", DEFAULT_MODEL)
        self.detail = detail
        self.max_tokens = max_tokens

        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if client is not None:
            self._client = client
        elif api_key:
            self._client = OpenAI(api_key=api_key)
        else:
            self._client = None
            logger.info("No OpenAI API key configured, captioning disabled")

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def caption(self, data: bytes, mime_type: str | None = None) -> str | None:
        """
        Generate a caption for an image.

        Args:
            data: Raw image bytes.
            mime_type: Declared MIME type of the bytes.

        Returns:
            Caption string, or None if captioning is disabled or failed.
        """
        if not self._client:
            logger.debug("Captioning disabled, skipping vision analysis")
            return None

        data_url = (
            f"data:{mime_type or 'image/jpeg'};base64,"
            + base64.b64encode(data).decode()
        )

        try:
            response = self._client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=0.4,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {
                                "type": "image_url",
                                "image_url": {"url": data_url, "detail": self.detail},
                            },
                            {"type": "text", "text": CAPTION_PROMPT},
                        ],
                    },
                ],
            )
            caption = clean_caption(response.choices[0].message.content)
        except Exception as e:
            logger.warning(f"Vision caption failed: {e}")
            return None

        logger.info(f"Vision caption: {caption}")
        return caption
