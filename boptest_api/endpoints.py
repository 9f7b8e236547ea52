"""
URL resolution for the two flavours of BOPTEST deployment.

BOPTEST (https://github.com/ibpsa/project1-boptest/) runs a single test case
and thus has no test id, while BOPTEST-Service (https://github.com/NREL/boptest-service)
runs several test cases in parallel and addresses each one by its test id.
"""
from abc import ABC, abstractmethod


class Endpoint(ABC):
    """Where requests for one session must go."""

    multi_tenant = False

    def __init__(self, base_url: str):
        self._base_url = base_url.rstrip('/')

    @property
    def base_url(self) -> str:
        return self._base_url

    @abstractmethod
    def url(self, service: str) -> str:
        """Return the absolute URL of ``service`` (e.g. ``"advance"``)."""

    def __eq__(self, other):
        return type(self) is type(other) and self.__dict__ == other.__dict__

    def __hash__(self):
        return hash((type(self), tuple(sorted(self.__dict__.items()))))


class LocalEndpoint(Endpoint):
    """Single-tenant BOPTEST: ``base/service``."""

    def url(self, service: str) -> str:
        return f"{self._base_url}/{service}"

    def __repr__(self):
        return f"LocalEndpoint(base_url='{self._base_url}')"


class ServiceEndpoint(Endpoint):
    """Multi-tenant BOPTEST-Service: ``base/service/testid``."""

    multi_tenant = True

    def __init__(self, base_url: str, testid: str):
        super().__init__(base_url)
        self._testid = testid

    @property
    def testid(self) -> str:
        return self._testid

    def url(self, service: str) -> str:
        return f"{self._base_url}/{service}/{self._testid}"

    def __repr__(self):
        return f"ServiceEndpoint(base_url='{self._base_url}', testid='{self._testid}')"
