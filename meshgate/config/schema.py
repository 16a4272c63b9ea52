"""Configuration schema using Pydantic."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from meshgate.cloud.credentials import Credential
from meshgate.cloud.endpoints import DEFAULT_SERVER_HOST, DEFAULT_SERVER_PORT


class CloudConfig(BaseModel):
    """Cloud registry server and device credential."""

    model_config = ConfigDict(populate_by_name=True)

    uuid: str = ""  # 36-char device identifier
    token: str = ""  # 40-char device secret
    host: str = Field(default=DEFAULT_SERVER_HOST, alias="server_name")
    port: int = DEFAULT_SERVER_PORT
    scheme: str = "http"  # http | https


class Config(BaseSettings):
    """Root configuration for meshgate."""

    cloud: CloudConfig = Field(default_factory=CloudConfig)
    proto: str = "http"  # only http is implemented
    tty: str | None = None  # local device serial port, e.g. /dev/ttyUSB0

    def credential(self) -> Credential:
        """Build the validated device credential."""
        return Credential(uuid=self.cloud.uuid, token=self.cloud.token)

    model_config = ConfigDict(
        env_prefix="MESHGATE_",
        env_nested_delimiter="__",
        extra="ignore",
    )
