"""InfluxDB write targets for the 1.x and 2.x HTTP APIs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence

from gnettrack_ingest.common.config_loader import IngestConfig, InfluxConfig
from gnettrack_ingest.common.constants import WRITE_PRECISION
from gnettrack_ingest.common.http import HttpClient, HttpResult, RetryConfig, TimeoutConfig


class WriteTarget(Protocol):
    name: str

    def write_lines(self, lines: Sequence[str]) -> HttpResult: ...

    def ping(self) -> HttpResult: ...


@dataclass
class InfluxV1Target:
    """Database-scoped ``/write`` endpoint with optional basic auth."""

    client: HttpClient
    url: str
    database: str
    username: str = ""
    password: str = ""
    name: str = "influxdb-1.x"

    def _auth(self) -> tuple[str, str] | None:
        if not self.username:
            return None
        return self.username, self.password

    def write_lines(self, lines: Sequence[str]) -> HttpResult:
        return self.client.post_text(
            f"{self.url}/write",
            "\n".join(lines),
            params={"db": self.database, "precision": WRITE_PRECISION},
            auth=self._auth(),
        )

    def ping(self) -> HttpResult:
        return self.client.get(f"{self.url}/ping", auth=self._auth())

    def create_database(self) -> HttpResult:
        escaped = self.database.replace("\\", "\\\\").replace('"', '\\"')
        return self.client.request(
            "POST",
            f"{self.url}/query",
            data={"q": f'CREATE DATABASE "{escaped}"'},
            auth=self._auth(),
        )


@dataclass
class InfluxV2Target:
    """Organisation/bucket-scoped ``/api/v2/write`` endpoint with token auth."""

    client: HttpClient
    url: str
    org: str
    bucket: str
    token: str
    name: str = "influxdb-2.x"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Token {self.token}"}

    def write_lines(self, lines: Sequence[str]) -> HttpResult:
        return self.client.post_text(
            f"{self.url}/api/v2/write",
            "\n".join(lines),
            params={"org": self.org, "bucket": self.bucket, "precision": WRITE_PRECISION},
            headers=self._headers(),
        )

    def ping(self) -> HttpResult:
        return self.client.get(f"{self.url}/health", headers=self._headers())


def build_target(config: InfluxConfig, client: HttpClient) -> InfluxV1Target | InfluxV2Target:
    """Pick the write protocol from which credentials are populated."""
    if config.uses_token_auth:
        return InfluxV2Target(
            client=client,
            url=config.url,
            org=config.org or "",
            bucket=config.bucket or config.database,
            token=config.token or "",
        )
    return InfluxV1Target(
        client=client,
        url=config.url,
        database=config.database,
        username=config.username,
        password=config.password,
    )


def build_client(config: IngestConfig, *, max_attempts: int | None = None) -> HttpClient:
    influx = config.influxdb
    return HttpClient(
        timeout=TimeoutConfig(connect=min(10.0, influx.timeout_seconds), read=influx.timeout_seconds),
        retry=RetryConfig(
            max_attempts=max_attempts or config.retry.max_attempts,
            multiplier=config.retry.multiplier,
            max_wait=config.retry.max_wait,
        ),
    )
