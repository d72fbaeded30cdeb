"""Client for the image hosting upload endpoint."""
import base64
import logging
import time
from typing import Optional

import requests

from processor.errors import ImageUploadFailed

logger = logging.getLogger(__name__)


class ImageHostClient:
    """Uploads cover images to an imgbb-compatible hosting API."""

    BASE_URL = "https://api.imgbb.com/1/upload"

    def __init__(
        self,
        api_key: Optional[str],
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1
    ):
        """
        Initialize the image host client.

        Args:
            api_key: API key for the hosting service
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts made before giving up (default: 3)
            base_delay: First backoff delay in seconds, doubled per retry
        """
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay

    def upload(self, image_path: str) -> str:
        """
        Upload an image file and return its public URL.

        Args:
            image_path: Path of the image file on disk

        Returns:
            Public URL of the uploaded image

        Raises:
            ImageUploadFailed: If the key is missing, the file cannot be
                read, or the service does not return a URL
        """
        if not self.api_key:
            raise ImageUploadFailed("Missing image host API key.")

        try:
            with open(image_path, 'rb') as handle:
                encoded = base64.b64encode(handle.read()).decode('ascii')
        except OSError as e:
            logger.error(f"Failed to read image {image_path}: {e}")
            raise ImageUploadFailed("Could not read the selected cover image.")

        payload = self._post_with_retry(encoded)

        url = (payload.get('data') or {}).get('url') if isinstance(payload, dict) else None
        if not url:
            logger.error("Image host response did not include a URL")
            raise ImageUploadFailed("Failed to upload image to the image host.")

        logger.info(f"Uploaded image {image_path}")
        return url

    def _post_with_retry(self, encoded_image: str) -> dict:
        """
        Post the encoded image with retry logic.

        Transport errors and 5xx responses are retried with exponential
        backoff; other error responses fail immediately.

        Args:
            encoded_image: Base64 encoded image bytes

        Returns:
            Decoded JSON response body

        Raises:
            ImageUploadFailed: If all retry attempts fail
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Uploading image (attempt {attempt + 1}/{self.max_retries})")
                response = requests.post(
                    self.BASE_URL,
                    params={'key': self.api_key},
                    data={'image': encoded_image},
                    timeout=self.timeout
                )
                response.raise_for_status()
                return response.json()

            except requests.HTTPError as e:
                if e.response is not None and e.response.status_code < 500:
                    logger.error(f"Image host rejected upload: {e}")
                    raise ImageUploadFailed("Failed to upload image to the image host.")
                error = e
            except (requests.RequestException, ValueError) as e:
                error = e

            if attempt < self.max_retries - 1:
                delay = self.base_delay * (2 ** attempt)
                logger.warning(
                    f"Upload failed (attempt {attempt + 1}/{self.max_retries}): {error}. "
                    f"Retrying in {delay} seconds..."
                )
                time.sleep(delay)
            else:
                logger.error(
                    f"All {self.max_retries} upload attempts failed. Last error: {error}"
                )

        raise ImageUploadFailed("Failed to upload image to the image host.")
