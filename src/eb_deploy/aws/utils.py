"""AWS client management."""
import threading
import boto3
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AWSClients:
    """The three service clients a deployment talks to, bound to one region."""

    def __init__(self, region: str, endpoint_url: Optional[str] = None, session: Optional[boto3.Session] = None):
        self.region = region
        self.endpoint_url = endpoint_url
        self._session = session or boto3.Session()
        self.elasticbeanstalk = self._create('elasticbeanstalk')
        self.s3 = self._create('s3')
        self.sts = self._create('sts')

    def _create(self, service_name: str) -> Any:
        client_kwargs = {
            'region_name': self.region
        }

        # Endpoint URL for local emulators
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = self._session.client(service_name, **client_kwargs)
            logger.debug(f"Created {service_name} client for {self.region}")
            return client
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise


class AWSClientFactory:
    """Hands out one AWSClients bundle per region, created lazily."""

    def __init__(self, endpoint_url: Optional[str] = None, session: Optional[boto3.Session] = None):
        self.endpoint_url = endpoint_url
        self._session = session
        self._clients: Dict[str, AWSClients] = {}
        self._lock = threading.Lock()

    def for_region(self, region: str) -> AWSClients:
        """Get or create the clients for a region."""
        clients = self._clients.get(region)
        if clients is not None:
            return clients

        with self._lock:
            if region not in self._clients:
                logger.debug(f"Initializing AWS clients for region {region}")
                self._clients[region] = AWSClients(region, self.endpoint_url, self._session)
            return self._clients[region]

    def clear(self) -> None:
        """Clear all cached clients."""
        with self._lock:
            self._clients.clear()
        logger.debug("Cleared all AWS clients")

    def __len__(self) -> int:
        return len(self._clients)
