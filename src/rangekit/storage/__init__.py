"""Object storage access."""

from .s3 import S3ObjectStore, create_s3_client, translate_client_error

__all__ = ["S3ObjectStore", "create_s3_client", "translate_client_error"]
