from typing import Any

from pydantic_settings import BaseSettings

from flydrive.schemas.config import StorageManagerConfig


class Settings(BaseSettings):
    # Default disk returned by StorageManager.disk()
    STORAGE_DEFAULT_DISK: str = "local"

    # Local filesystem disk
    STORAGE_LOCAL_ROOT: str = "storage"

    # S3 disk
    S3_BUCKET: str | None = None
    S3_KEY: str | None = None
    S3_SECRET: str | None = None
    S3_REGION: str | None = None
    S3_ENDPOINT: str | None = None

    # GCS disk
    GCS_BUCKET: str | None = None
    GCS_KEY_FILENAME: str | None = None

    # Azure disk
    AZURE_CONTAINER: str | None = None
    AZURE_CONNECTION_STRING: str | None = None

    # Streaming
    STREAM_CHUNK_SIZE: int = 64 * 1024  # 64KB

    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}

    def storage_config(self) -> StorageManagerConfig:
        """
        Build the StorageManager configuration from the environment.

        The local disk is always present. Cloud disks are only added when
        their bucket/container is configured.
        """
        disks: dict[str, dict[str, Any]] = {
            "local": {"driver": "local", "root": self.STORAGE_LOCAL_ROOT},
        }

        if self.S3_BUCKET:
            disks["s3"] = {
                "driver": "s3",
                "bucket": self.S3_BUCKET,
                "key": self.S3_KEY,
                "secret": self.S3_SECRET,
                "region": self.S3_REGION,
                "endpoint": self.S3_ENDPOINT,
            }

        if self.GCS_BUCKET:
            disks["gcs"] = {
                "driver": "gcs",
                "bucket": self.GCS_BUCKET,
                "key_filename": self.GCS_KEY_FILENAME,
            }

        if self.AZURE_CONTAINER:
            disks["azure"] = {
                "driver": "azure",
                "container": self.AZURE_CONTAINER,
                "connection_string": self.AZURE_CONNECTION_STRING,
            }

        return StorageManagerConfig(default=self.STORAGE_DEFAULT_DISK, disks=disks)


settings = Settings()
