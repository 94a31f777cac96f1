"""
Signature image storage.

WHAT: Stores the signer's drawn signature in S3 and returns a reference.

WHY: Signature images are binary blobs that don't belong in the
proposals table. The signature row keeps only the returned reference.

HOW: The browser posts the canvas as a base64 data URL. We decode it,
check size and image magic bytes, and upload with boto3 under a
per-account key. The reference has the form s3://bucket/key.
"""

import base64
import binascii
import logging
import re
import uuid
from typing import Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from proposal_engine.core.config import settings
from proposal_engine.core.exceptions import S3Error, SignatureImageError

logger = logging.getLogger(__name__)

DATA_URL_PATTERN = re.compile(
    r"^data:(?P<content_type>image/(?:png|jpeg));base64,(?P<payload>[A-Za-z0-9+/=\s]+)$"
)

# content type -> (file extension, magic bytes)
IMAGE_FORMATS = {
    "image/png": ("png", b"\x89PNG\r\n\x1a\n"),
    "image/jpeg": ("jpg", b"\xff\xd8\xff"),
}


def decode_signature_image(data_url: str, max_bytes: Optional[int] = None) -> Tuple[str, bytes]:
    """
    Decode and validate a signature data URL.

    Args:
        data_url: "data:image/png;base64,..." (PNG or JPEG)
        max_bytes: Size limit of the decoded image (defaults to settings)

    Returns:
        Tuple of (content type, image bytes)

    Raises:
        SignatureImageError: If the payload is missing, malformed, of the
            wrong format or too large
    """
    limit = max_bytes or settings.SIGNATURE_MAX_BYTES

    if not data_url or not isinstance(data_url, str):
        raise SignatureImageError(message="Signature image is required")

    match = DATA_URL_PATTERN.match(data_url.strip())
    if match is None:
        raise SignatureImageError(message="Signature image must be a PNG or JPEG data URL")

    content_type = match.group("content_type")
    payload = re.sub(r"\s+", "", match.group("payload"))

    # base64 inflates by 4/3; reject oversized payloads before decoding
    if len(payload) * 3 // 4 > limit + 3:
        raise SignatureImageError(message="Signature image is too large", max_bytes=limit)

    try:
        image = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureImageError(message="Signature image is not valid base64") from e

    if not image:
        raise SignatureImageError(message="Signature image is empty")
    if len(image) > limit:
        raise SignatureImageError(message="Signature image is too large", max_bytes=limit)

    _, magic = IMAGE_FORMATS[content_type]
    if not image.startswith(magic):
        raise SignatureImageError(message="Signature image content does not match its type")

    return content_type, image


class SignatureStorage:
    """
    Uploads signature images to S3.

    Attributes:
        bucket_name: Target bucket
        s3_client: boto3 S3 client (injectable for tests)
    """

    def __init__(self, s3_client=None, bucket_name: Optional[str] = None):
        self.bucket_name = bucket_name or settings.S3_BUCKET_NAME
        self.s3_client = s3_client or boto3.client(
            "s3",
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION,
            endpoint_url=settings.S3_ENDPOINT,
        )

    def _build_key(self, account_id: int, proposal_id: int, extension: str) -> str:
        # WHY: uuid suffix so a retried upload never overwrites an earlier object
        return (
            f"accounts/{account_id}/signatures/"
            f"proposal-{proposal_id}-{uuid.uuid4().hex[:12]}.{extension}"
        )

    async def store(self, account_id: int, proposal_id: int, data_url: str) -> str:
        """
        Validate and upload a signature image.

        Args:
            account_id: Owning account of the proposal
            proposal_id: Proposal being signed
            data_url: Base64 image data URL from the signing page

        Returns:
            Reference of the stored object (s3://bucket/key)

        Raises:
            SignatureImageError: If the image is invalid
            S3Error: If the upload fails
        """
        content_type, image = decode_signature_image(data_url)
        extension, _ = IMAGE_FORMATS[content_type]
        key = self._build_key(account_id, proposal_id, extension)

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=image,
                ContentType=content_type,
                Metadata={
                    "account_id": str(account_id),
                    "proposal_id": str(proposal_id),
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload signature for proposal {proposal_id}: {e}")
            raise S3Error(
                message="Failed to store signature image",
                proposal_id=proposal_id,
            ) from e

        logger.info(f"Stored signature image for proposal {proposal_id} ({len(image)} bytes)")
        return f"s3://{self.bucket_name}/{key}"

    async def discard(self, reference: str) -> bool:
        """
        Delete a stored signature image.

        Cleanup only: failures are logged and reported, never raised, so the
        error that triggered the cleanup is the one the caller sees.

        Args:
            reference: Value previously returned by store()

        Returns:
            True if the object was deleted
        """
        prefix = f"s3://{self.bucket_name}/"
        if not reference or not reference.startswith(prefix):
            logger.warning(f"Not discarding signature outside bucket: {reference}")
            return False
        key = reference[len(prefix):]

        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Failed to delete signature image {key}: {e}")
            return False

        logger.info(f"Deleted signature image {key}")
        return True
