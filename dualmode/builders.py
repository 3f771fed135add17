"""Context-aware request builder.

Turns raw field data into data that is safe for the context it will be created
in: production runs get the test marker, a placeholder character name and a
test-domain email; other runs get their isolation prefix. Test code calls this
before creating entities and registering them.
"""

import random
import re
import time
from typing import Any, Dict, Optional

from dualmode.core.config import SafetyConfig
from dualmode.core.context import TestContext
from dualmode.core.modes import TestMode
from dualmode.utils.logging import get_logger


class ContextAwareRequestBuilder:
    """Builds customer, ticket and route payloads for a test context."""

    def __init__(self, config: Optional[SafetyConfig] = None, rng: Optional[random.Random] = None):
        """Initialize the builder.

        Args:
            config: Marker configuration shared with the safety validator
            rng: Random source for character and location picks
        """
        self.config = config or SafetyConfig()
        self.rng = rng or random.Random()
        self.logger = get_logger("request_builder")

    def build_customer_request(self, data: Dict[str, Any], context: TestContext) -> Dict[str, Any]:
        """Build a customer payload."""
        resolved = dict(data)
        marker = self.config.name_marker

        if context.mode == TestMode.PRODUCTION:
            name = resolved.get("name")
            if not name or marker not in name:
                character = self.rng.choice(self.config.character_names)
                resolved["name"] = f"{character} - {marker} - {int(time.time() * 1000)}"
            email = resolved.get("email")
            if not email or self.config.email_domain not in email:
                local = self._email_local_part(resolved["name"])
                resolved["email"] = f"{local}@{self.config.email_domain}"
        else:
            resolved["name"] = self._prefixed(resolved.get("name") or "customer", context)

        resolved["isTestData"] = True
        self.logger.debug(f"Built customer request for {context.mode.value} mode")
        return resolved

    def build_ticket_request(self, data: Dict[str, Any], context: TestContext) -> Dict[str, Any]:
        """Build a ticket payload."""
        resolved = dict(data)
        marker = self.config.name_marker

        if context.mode == TestMode.PRODUCTION:
            title = resolved.get("title")
            if title and marker not in title:
                resolved["title"] = f"{title} - {marker}"
            description = resolved.get("description")
            if description and marker not in description:
                resolved["description"] = f"{description} ({marker})"
        elif resolved.get("title"):
            resolved["title"] = self._prefixed(resolved["title"], context)

        resolved["isTestData"] = True
        self.logger.debug(f"Built ticket request for {context.mode.value} mode")
        return resolved

    def build_route_request(self, data: Dict[str, Any], context: TestContext) -> Dict[str, Any]:
        """Build a route payload."""
        resolved = dict(data)
        name = resolved.get("name") or "Route"

        if context.mode == TestMode.PRODUCTION:
            if self.config.route_marker not in name:
                name = f"{self.config.route_marker} {name}"
            if self.config.name_marker not in name:
                name = f"{name} - {self.config.name_marker}"
            resolved["name"] = name
            if not resolved.get("location"):
                resolved["location"] = self.rng.choice(self.config.route_locations)
        else:
            resolved["name"] = self._prefixed(name, context)

        resolved["isTestData"] = True
        self.logger.debug(f"Built route request for {context.mode.value} mode")
        return resolved

    @staticmethod
    def _prefixed(value: str, context: TestContext) -> str:
        if value.startswith(context.isolation_prefix):
            return value
        return f"{context.isolation_prefix}_{value}"

    @staticmethod
    def _email_local_part(name: str) -> str:
        person = name.split(" - ")[0].strip().lower()
        local = re.sub(r"[^a-z.]", "", re.sub(r"\s+", ".", person))
        return local or "test"
