import base64
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator

class ProxyConfig(BaseModel):
    """
    Upstream HTTP proxy the bridge forwards to.

    Attributes:
        upstream_host (str): Upstream proxy host
        upstream_port (int): Upstream proxy port
        username (Optional[str]): Proxy username, set together with password
        password (Optional[str]): Proxy password, set together with username
    """
    upstream_host: str = "127.0.0.1"
    upstream_port: int = Field(default=1080, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator("username", "password", mode="before")
    @classmethod
    def blank_as_unset(cls, v):
        # PROXY_USERNAME= in a compose file means "no credentials"
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_credentials(self) -> "ProxyConfig":
        if (self.username is None) != (self.password is None):
            raise ValueError("Proxy username and password must be set together")
        return self

    @property
    def has_credentials(self) -> bool:
        return self.username is not None and self.password is not None

    @property
    def upstream_address(self) -> str:
        return f"{self.upstream_host}:{self.upstream_port}"

    def authorization_header(self) -> Optional[bytes]:
        """Full `Proxy-Authorization` header line, or None without credentials"""
        if not self.has_credentials:
            return None
        credentials = f"{self.username}:{self.password}".encode("utf-8")
        encoded = base64.b64encode(credentials).decode("ascii")
        return f"Proxy-Authorization: Basic {encoded}\r\n".encode("ascii")

    def to_url(self) -> str:
        """Proxy URL with credentials when available, e.g. for the solver API"""
        if self.has_credentials:
            return f"http://{self.username}:{self.password}@{self.upstream_host}:{self.upstream_port}"
        return f"http://{self.upstream_host}:{self.upstream_port}"
