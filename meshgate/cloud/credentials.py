"""Device credential registered on the cloud registry."""

from __future__ import annotations

from dataclasses import dataclass

from meshgate.cloud.errors import InvalidArgumentError
from meshgate.utils.redaction import mask_value

# UUID128 text form: xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx
UUID_SIZE = 36
TOKEN_SIZE = 40


@dataclass(frozen=True, slots=True)
class Credential:
    """Identifier/token pair; fixed width on the wire, never padded."""

    uuid: str
    token: str

    def __post_init__(self) -> None:
        _check_field("uuid", self.uuid, UUID_SIZE)
        _check_field("token", self.token, TOKEN_SIZE)

    def __repr__(self) -> str:
        return f"Credential(uuid={self.uuid!r}, token={mask_value(self.token)!r})"


def _check_field(name: str, value: str, size: int) -> None:
    if not isinstance(value, str):
        raise InvalidArgumentError(f"{name} must be a string")
    if len(value) != size:
        raise InvalidArgumentError(f"{name} must be {size} characters, got {len(value)}")
    if not value.isprintable():
        raise InvalidArgumentError(f"{name} must contain printable characters only")
