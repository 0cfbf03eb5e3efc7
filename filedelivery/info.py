"""Configuration settings for the file delivery service."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from filedelivery.utils.offload import OffloadMechanism

MIB = 1024 * 1024

DEFAULT_RESTRICTED_PROTOCOLS = (
    "phar://",
    "php://",
    "glob://",
    "data://",
    "expect://",
    "zip://",
    "rar://",
    "zlib://",
)


class Settings(BaseSettings):
    """Delivery defaults, offload capability and server binding."""

    model_config = SettingsConfigDict(
        env_prefix="DELIVERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    #  Files
    root_dir: Path = Field(default=Path("files"), description="Directory files are served from")
    restricted_protocols: tuple[str, ...] = Field(default=DEFAULT_RESTRICTED_PROTOCOLS)

    #  Streaming
    chunk_size: int = Field(default=MIB, gt=0, description="Bytes read per iteration")
    flush_threshold: int = Field(default=10 * MIB, gt=0, description="Flush after this many unflushed bytes")
    enable_range: bool = Field(default=True)

    #  Offload
    enable_offload: bool = Field(default=False, description="Offload by default when supported")
    offload_mechanism: OffloadMechanism = Field(default=OffloadMechanism.NONE)
    offload_internal_prefix: str = Field(default="/protected/", description="nginx internal location")

    #  Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    log_level: str = Field(default="INFO")

    #  FastAPI queue bridge
    queue_size: int = Field(default=8, gt=0)
    write_timeout: float = Field(default=60.0, gt=0)


settings = Settings()
