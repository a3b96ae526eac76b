"""Decode the JSON document of a status response.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import DecodeError


@dataclass
class Version:
    name: str
    protocol: int


@dataclass
class Players:
    max: int
    online: int
    sample: list = field(default_factory=list)


@dataclass
class StatusRecord:
    """What a server reports about itself in the server list"""

    version: Version
    players: Players
    description: str = ""
    favicon: Optional[str] = None
    # round trip of the ping/pong exchange in milliseconds, if it was measured
    latency: Optional[float] = None
    raw: dict = field(default_factory=dict, repr=False)

    @property
    def motd(self) -> str:
        """The description without formatting codes"""
        return c_filter(self.description)

    def toDict(self) -> dict:
        return {
            "version": {"name": self.version.name, "protocol": self.version.protocol},
            "players": {
                "max": self.players.max,
                "online": self.players.online,
                "sample": self.players.sample,
            },
            "description": {"text": self.description},
            "hasFavicon": self.favicon is not None,
            "latency": self.latency,
        }


def c_filter(text: str) -> str:
    """Removes all color and style codes from a string

    Args:
        text (str): The string to remove codes from

    Returns:
        str: The string without codes
    """
    return re.sub(r"§[0-9a-fk-orx]", "", text, flags=re.IGNORECASE)


def parse_description(description: Any) -> str:
    """Flattens a description into plain text

    The description is either a plain string or a chat component, a dict with a
    ``text`` and a list of more components under ``extra``.

    Args:
        description (Any): The description from the status response

    Returns:
        str: The text of the description and all of its extras
    """
    if description is None:
        return ""
    if isinstance(description, str):
        return description
    if isinstance(description, list):
        return "".join(parse_description(part) for part in description)
    if isinstance(description, dict):
        text = description.get("text", "")
        if not isinstance(text, str):
            raise DecodeError(f"Expected description text to be str, got {type(text).__name__}")
        return text + parse_description(description.get("extra"))

    raise DecodeError(f"Unexpected description type: {type(description).__name__}")


def _field(doc: dict, path: str, kind: type):
    value = doc
    for key in path.split("."):
        if not isinstance(value, dict) or key not in value:
            raise DecodeError(f"Status response is missing {path}")
        value = value[key]

    # bool is an int subclass, but not a player count
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodeError(
            f"Expected {path} to be {kind.__name__}, got {type(value).__name__}"
        )
    return value


def decode_status(payload: bytes | str) -> StatusRecord:
    """Parses the JSON payload of a status response

    Args:
        payload (bytes | str): The JSON text, bytes are decoded as utf-8

    Returns:
        StatusRecord: The decoded status

    Raises:
        DecodeError: If the payload is not JSON or is missing required fields
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecodeError(f"Status response is not valid utf-8: {err}") from err

    try:
        doc = json.loads(payload)
    except json.JSONDecodeError as err:
        raise DecodeError(f"Failed to decode JSON {err}: {payload[:100]}") from err

    if not isinstance(doc, dict):
        raise DecodeError(f"Expected a JSON object, got {type(doc).__name__}")

    sample = doc["players"].get("sample") if isinstance(doc.get("players"), dict) else None
    favicon = doc.get("favicon")

    return StatusRecord(
        version=Version(
            name=_field(doc, "version.name", str),
            protocol=_field(doc, "version.protocol", int),
        ),
        players=Players(
            max=_field(doc, "players.max", int),
            online=_field(doc, "players.online", int),
            sample=sample if isinstance(sample, list) else [],
        ),
        description=parse_description(doc.get("description")),
        favicon=favicon if isinstance(favicon, str) else None,
        raw=doc,
    )
