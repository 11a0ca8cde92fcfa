"""
AI Service for location extraction and image verification
Supports OpenAI (GPT-4o-mini) with Gemini (gemini-2.0-flash) fallback
Every call is bounded by a request timeout; callers own any fallback policy
"""
from typing import Dict, Optional
import json
import logging
from openai import OpenAI
from utils.errors import UpstreamError
from utils.secure_logging import truncate_for_log

logger = logging.getLogger(__name__)

# Lazy import for Gemini (only if needed)
try:
    from google import genai
    GEMINI_AVAILABLE = True
except ImportError:
    GEMINI_AVAILABLE = False
    logger.info("google-genai not installed - Gemini fallback disabled")


LOCATION_SYSTEM_PROMPT = (
    "You extract place names from disaster descriptions. Return only the location name "
    "(neighborhood, landmark or city, with state/country when known) or NONE if no location is mentioned."
)

IMAGE_SYSTEM_PROMPT = (
    "You verify whether images show authentic disaster damage. Consider image consistency, lighting, "
    "shadows and whether the damage appears realistic. Respond with a JSON object containing "
    "'isAuthentic' (boolean), 'confidence' (HIGH, MEDIUM or LOW) and 'analysis' (brief explanation)."
)

VALID_CONFIDENCE = ('high', 'medium', 'low')


class AIService:
    """Thin wrapper over the LLM providers used by the hub"""

    def __init__(self, openai_api_key=None, gemini_api_key=None, timeout=10.0,
                 openai_model='gpt-4o-mini', gemini_model='gemini-2.0-flash'):
        """
        Initialize AI clients

        Args:
            openai_api_key: OpenAI key (None disables OpenAI)
            gemini_api_key: Gemini key (None disables Gemini)
            timeout: Per-request timeout in seconds
            openai_model: Chat completion model name
            gemini_model: Gemini model name
        """
        self.timeout = timeout
        self.openai_model = openai_model
        self.gemini_model = gemini_model

        # Initialize OpenAI (primary)
        self.openai_api_key = openai_api_key
        self.openai_client = (
            OpenAI(api_key=self.openai_api_key, timeout=timeout, max_retries=1)
            if self.openai_api_key else None
        )

        # Initialize Gemini (fallback)
        self.gemini_api_key = gemini_api_key
        self.gemini_client = None
        if GEMINI_AVAILABLE and self.gemini_api_key:
            try:
                self.gemini_client = genai.Client(
                    api_key=self.gemini_api_key,
                    http_options={'timeout': int(timeout * 1000)}
                )
                logger.info("Gemini client initialized successfully (fallback enabled)")
            except Exception as e:
                logger.warning(f"Failed to initialize Gemini client: {e}")

        if self.openai_client:
            logger.info("OpenAI client initialized (primary AI provider)")
        elif self.gemini_client:
            logger.info("Only Gemini available - using as primary AI provider")
        else:
            logger.warning("No AI providers available - location extraction will use heuristics only")

    @property
    def available(self) -> bool:
        return bool(self.openai_client or self.gemini_client)

    def _complete(self, system_prompt: str, prompt: str, json_mode: bool, max_tokens: int) -> str:
        """
        Run a prompt against OpenAI, falling back to Gemini

        Returns:
            Raw text of the first provider that answers

        Raises:
            UpstreamError: If no provider is configured or all of them fail
        """
        if not self.available:
            raise UpstreamError('AI service not configured')

        if self.openai_client:
            try:
                kwargs = {}
                if json_mode:
                    kwargs['response_format'] = {"type": "json_object"}
                response = self.openai_client.chat.completions.create(
                    model=self.openai_model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": prompt}
                    ],
                    temperature=0.1,
                    max_tokens=max_tokens,
                    **kwargs
                )
                return (response.choices[0].message.content or '').strip()
            except Exception as e:
                logger.warning(f"OpenAI API failed: {e}. Falling back to Gemini...")

        if self.gemini_client:
            try:
                config = {'temperature': 0.1, 'max_output_tokens': max_tokens}
                if json_mode:
                    config['response_mime_type'] = 'application/json'
                response = self.gemini_client.models.generate_content(
                    model=self.gemini_model,
                    contents=f"{system_prompt}\n\n{prompt}",
                    config=config
                )
                return (response.text or '').strip()
            except Exception as e:
                logger.error(f"Gemini API failed: {e}")

        logger.error("All AI providers failed")
        raise UpstreamError()

    def extract_location(self, description: str) -> Optional[str]:
        """
        Ask the model for the location mentioned in a disaster description

        Args:
            description: Free-text description

        Returns:
            Location string, or None if the model found no location

        Raises:
            UpstreamError: If the providers are unavailable or fail
        """
        text = self._complete(LOCATION_SYSTEM_PROMPT, f'Description: "{description}"',
                              json_mode=False, max_tokens=50)
        text = text.strip().strip('"').strip()

        if not text or text.upper() == 'NONE':
            logger.info(f"AI found no location in: {truncate_for_log(description)}")
            return None

        return text

    def verify_image(self, image_url: str) -> Dict:
        """
        Assess whether an image URL shows authentic disaster damage

        Returns:
            Dict with isAuthentic (bool), confidence ('high'|'medium'|'low') and analysis

        Raises:
            UpstreamError: If the providers are unavailable, fail, or answer malformed JSON
        """
        text = self._complete(IMAGE_SYSTEM_PROMPT, f"Image URL: {image_url}",
                              json_mode=True, max_tokens=200)
        try:
            result = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse image verification response as JSON: {e}")
            raise UpstreamError('Image verification failed')

        if not isinstance(result, dict):
            raise UpstreamError('Image verification failed')

        confidence = str(result.get('confidence', 'medium')).lower()
        if confidence not in VALID_CONFIDENCE:
            confidence = 'medium'

        is_authentic = result.get('isAuthentic', False)
        if isinstance(is_authentic, str):
            is_authentic = is_authentic.strip().lower() in ('true', 'yes', 'authentic')

        return {
            'isAuthentic': bool(is_authentic),
            'confidence': confidence,
            'analysis': result.get('analysis') or 'No analysis provided'
        }
