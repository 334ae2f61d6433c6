"""
Resource kinds exposed by the VAPI REST API.
"""

from enum import Enum

from voiceops.services.errors import UnknownResourceError

_PATHS = {
    "assistants": "/assistant",
    "calls": "/call",
    "phoneNumbers": "/phone-number",
    "workflows": "/workflow",
    "credentials": "/credential",
    "squads": "/squad",
    "tools": "/tool",
}


class ResourceKind(str, Enum):
    """Listable VAPI resources."""

    ASSISTANTS = "assistants"
    CALLS = "calls"
    PHONE_NUMBERS = "phoneNumbers"
    WORKFLOWS = "workflows"
    CREDENTIALS = "credentials"
    SQUADS = "squads"
    TOOLS = "tools"

    @property
    def path(self) -> str:
        return _PATHS[self.value]

    def item_path(self, resource_id: str) -> str:
        if not resource_id:
            raise ValueError(f"Empty id for {self.value}")
        return f"{self.path}/{resource_id}"

    @classmethod
    def parse(cls, name: "str | ResourceKind") -> "ResourceKind":
        """Resolve a kind from its name, raising UnknownResourceError."""
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            raise UnknownResourceError(str(name)) from None
