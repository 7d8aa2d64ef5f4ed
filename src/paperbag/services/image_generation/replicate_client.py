"""Replicate client for cartoon generation.

Failures are sorted into three buckets the generation job acts on:
- TransientError: the user may simply ask again later (image goes to 'error')
- ContentPolicyError: the model refused the photo (image goes to 'failed')
- PermanentError: configuration or input problem (image goes to 'failed')
"""

import asyncio
from typing import Any, Optional

import replicate
from replicate.exceptions import ReplicateException

DEFAULT_MODEL = "black-forest-labs/flux-kontext-pro"

# Checked in order against the lower-cased error message
TRANSIENT_MARKERS = ("timeout", "timed out", "429", "rate limit", "502", "503", "504",
                     "service unavailable")
AUTH_MARKERS = ("401", "403", "unauthorized", "forbidden", "authentication", "invalid api token")
CONTENT_POLICY_MARKERS = ("content policy", "nsfw", "safety", "inappropriate")


class ReplicateError(Exception):
    """A generation failure, sorted by whether asking again can help."""

    retryable: bool = False


class TransientError(ReplicateError):
    """Network trouble, rate limiting or an overloaded model."""

    retryable = True


class ContentPolicyError(ReplicateError):
    """The photo or prompt was rejected by the model's safety filter."""


class PermanentError(ReplicateError):
    """Bad credentials, bad input or an unusable model response."""


def classify_error(exception: BaseException) -> ReplicateError:
    """Map a raw SDK or network exception onto a ReplicateError subclass."""
    message = str(exception)
    lowered = message.lower()

    if isinstance(exception, TimeoutError) or any(m in lowered for m in TRANSIENT_MARKERS):
        return TransientError(f"Generation temporarily unavailable: {message}")
    if any(m in lowered for m in AUTH_MARKERS):
        return PermanentError(f"Replicate rejected the credentials: {message}")
    if any(m in lowered for m in CONTENT_POLICY_MARKERS):
        return ContentPolicyError(f"Content policy violation: {message}")
    if isinstance(exception, (ConnectionError, OSError)):
        return TransientError(f"Connection error: {message}")
    return PermanentError(f"Generation failed: {message}")


def _extract_url(output: Any) -> str:
    # Output shape varies by model: list of files, a single file, or a URL string
    if isinstance(output, list):
        if not output:
            raise PermanentError("Replicate returned an empty output list")
        output = output[0]
    url = getattr(output, "url", output)
    if callable(url):
        url = url()
    if not isinstance(url, str) or not url:
        raise PermanentError(f"Replicate returned no image URL ({type(output).__name__})")
    return url


async def generate_cartoon(
    image_url: str,
    prompt: str,
    api_token: str,
    model_version: Optional[str] = None,
) -> str:
    """Turn a photo into a cartoon with an image-to-image model.

    Args:
        image_url: Publicly reachable URL of the original photo
        prompt: Style prompt describing the transformation
        api_token: Replicate API token
        model_version: Model identifier (defaults to DEFAULT_MODEL)

    Returns:
        URL of the generated image on Replicate's CDN

    Raises:
        TransientError: Temporary failure, the request may be repeated later
        ContentPolicyError: Rejected by the model's safety filter
        PermanentError: Configuration, input or output problem
    """
    if not api_token:
        raise PermanentError("REPLICATE_API_TOKEN not configured")
    if not image_url:
        raise PermanentError("Original image URL is missing")

    client = replicate.Client(api_token=api_token)
    model_input = {"prompt": prompt, "input_image": image_url, "output_format": "png"}

    try:
        # The SDK call blocks until the prediction finishes
        output = await asyncio.to_thread(
            client.run, model_version or DEFAULT_MODEL, input=model_input
        )
    except ReplicateException as e:
        # API errors and failed predictions (ModelError) alike
        raise classify_error(e) from e
    except (ConnectionError, OSError, TimeoutError) as e:
        raise classify_error(e) from e
    except Exception as e:
        raise PermanentError(f"Unexpected error: {e}") from e

    return _extract_url(output)
