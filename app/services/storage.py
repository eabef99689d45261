"""
Supabase Storage client for mastered files (bucket "mastered" by default).
Talks to the Storage REST API with the service role key.
"""
import logging
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30


class StorageError(Exception):
    pass


class SupabaseStorage:
    def __init__(self, supabase_url: str, service_key: str, bucket: str = "mastered"):
        self.base_url = f"{supabase_url.rstrip('/')}/storage/v1"
        self.bucket = bucket
        self.headers = {
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
        }

    def _object_url(self, prefix: str, path: str) -> str:
        return f"{self.base_url}/{prefix}/{self.bucket}/{quote(path.lstrip('/'))}"

    def download(self, path: str) -> bytes:
        """Fetch an object's bytes."""
        url = self._object_url("object", path)
        try:
            response = requests.get(url, headers=self.headers, timeout=REQUEST_TIMEOUT)
        except requests.exceptions.RequestException as e:
            raise StorageError(f"Download request failed: {e}") from e

        if response.status_code != 200:
            raise StorageError(f"Download failed ({response.status_code}): {response.text[:200]}")
        return response.content

    def create_signed_url(self, path: str, expires_in: int = 60, download: bool = True) -> str:
        """
        Create a short-lived signed URL for an object.
        With download=True the URL serves the file as an attachment.
        """
        url = self._object_url("object/sign", path)
        try:
            response = requests.post(
                url,
                json={"expiresIn": expires_in},
                headers=self.headers,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            raise StorageError(f"Sign request failed: {e}") from e

        if response.status_code != 200:
            raise StorageError(f"Sign failed ({response.status_code}): {response.text[:200]}")

        try:
            signed = (response.json() or {}).get("signedURL")
        except ValueError as e:
            raise StorageError(f"Sign response was not JSON: {e}") from e
        if not signed:
            raise StorageError("Sign response did not include signedURL")

        signed_url = f"{self.base_url}/{signed.lstrip('/')}"
        if download:
            signed_url += "&download=" if "?" in signed_url else "?download="
        return signed_url
