"""
Client registry.

Holds the one long-lived client of a process or service and refuses to
hand it out for a different API key unless explicitly told to replace it.
"""

import logging
from typing import Optional

from .client import AbuseIPDBClient
from .encoding import mask_key
from .results import KeyMismatchError


class ClientRegistry:
    """
    Single-slot cache of an AbuseIPDBClient keyed by API key.

    A client replaced with ``override=True`` may still be in use by a
    caller, so it is not closed on replacement. It keeps its session open
    until ``close()``; call ``close()`` after overriding keys repeatedly.
    """

    def __init__(self, **client_options):
        self._client_options = client_options
        self._instance: Optional[AbuseIPDBClient] = None
        self._retired: list[AbuseIPDBClient] = []

    @property
    def current(self) -> Optional[AbuseIPDBClient]:
        return self._instance

    def get_instance(
        self,
        api_key: str,
        logger: Optional[logging.Logger] = None,
        override: bool = False
    ) -> AbuseIPDBClient:
        """
        Get the cached client, constructing it on first use.

        Args:
            api_key: Key the client must use
            logger: Diagnostics sink for a newly built client
            override: Replace a cached client built for another key

        Raises:
            KeyMismatchError: if a client for another key exists and override is False
        """
        if self._instance is None:
            self._instance = AbuseIPDBClient(api_key, logger, **self._client_options)
            return self._instance

        if self._instance.api_key == api_key:
            return self._instance

        if not override:
            raise KeyMismatchError(
                f"API key mismatch: registry holds a client for {mask_key(self._instance.api_key)}"
            )

        (logger or logging.getLogger("abuseipdb_client")).debug(
            f"Replacing client for {mask_key(self._instance.api_key)} with {mask_key(api_key)}"
        )
        self._retired.append(self._instance)
        self._instance = AbuseIPDBClient(api_key, logger, **self._client_options)
        return self._instance

    async def close(self) -> None:
        """Close the cached client and any it replaced."""
        clients, self._retired = self._retired, []
        if self._instance is not None:
            clients.append(self._instance)
            self._instance = None

        for client in clients:
            await client.close()
