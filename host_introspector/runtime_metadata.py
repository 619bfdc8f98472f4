import enum
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Mapping, NamedTuple, Optional

import requests

from .common_constants import (
    AWS_EC2_METADATA_SERVICE_ENDPOINT,
    AWS_EC2_METADATA_TOKEN_HEADER,
    AWS_EC2_METADATA_TOKEN_TTL_HEADER,
    AWS_EC2_METADATA_TOKEN_TTL_SECONDS,
    AWS_ECS_V2_TASK_METADATA_URL,
    AWS_ECS_V2_TASK_STATS_URL,
    AWS_EXECUTION_ENV_ECS_EC2,
    ECS_CONTAINER_DOCKER_ID_KEY,
    ECS_CONTAINER_TYPE_KEY,
    ECS_CONTAINER_TYPE_NORMAL,
    ECS_CONTAINERS_KEY,
    ENV_AWS_EC2_METADATA_DISABLED,
    ENV_AWS_EC2_METADATA_SERVICE_ENDPOINT,
    ENV_AWS_EXECUTION_ENV,
    ENV_ECS_CONTAINER_METADATA_FILE,
    ENV_ECS_CONTAINER_METADATA_URI,
    FORMAT_JSON,
    FORMAT_TEXT,
)
from .common_utils import (
    get_list_value,
    get_str_value,
    parse_json,
    string_to_bool,
)
from .introspector_params import DEFAULT_METADATA_TIMEOUT_SECONDS
from .metadata_fetcher import MetadataFetcher, MetadataFetchError

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())


class DiscoveryMode(enum.Enum):
    NONE = "none"
    V2 = "v2"
    V3 = "v3"


class ProbeResult(NamedTuple):
    mode: DiscoveryMode
    container_metadata_uri: Optional[str]
    execution_env: Optional[str]


def probe_discovery_mode(env: Optional[Mapping[str, str]] = None) -> ProbeResult:
    """
    Decide which ECS task metadata endpoint version to use, based only on
    the environment. The v3 URI variable takes priority, even when empty.
    """
    if env is None:
        env = os.environ

    container_metadata_uri = env.get(ENV_ECS_CONTAINER_METADATA_URI)
    execution_env = env.get(ENV_AWS_EXECUTION_ENV)

    if container_metadata_uri is not None:
        mode = DiscoveryMode.V3
    elif execution_env == AWS_EXECUTION_ENV_ECS_EC2:
        mode = DiscoveryMode.V2
    else:
        mode = DiscoveryMode.NONE

    return ProbeResult(
        mode=mode,
        container_metadata_uri=container_metadata_uri,
        execution_env=execution_env,
    )


def resolve_container_id(task_metadata: Any) -> str:
    """
    Return the DockerId of the first container of type NORMAL in the task
    metadata document, or the empty string if there is none or the
    document doesn't have the expected shape.
    """
    containers = get_list_value(task_metadata, ECS_CONTAINERS_KEY)

    if containers is None:
        return ""

    for container in containers:
        if get_str_value(container, ECS_CONTAINER_TYPE_KEY) != ECS_CONTAINER_TYPE_NORMAL:
            continue

        docker_id = get_str_value(container, ECS_CONTAINER_DOCKER_ID_KEY)
        if docker_id is not None:
            return docker_id

    return ""


@dataclass(frozen=True)
class EcsMetadata:
    mode: DiscoveryMode = DiscoveryMode.NONE
    container_metadata: Optional[Any] = None
    container_stats: Optional[Any] = None
    task_metadata: Optional[Any] = None
    task_stats: Optional[Any] = None


# https://docs.aws.amazon.com/AmazonECS/latest/developerguide/task-metadata-endpoint.html
class AwsEcsMetadataFetcher:
    def __init__(
        self,
        fetcher: Optional[MetadataFetcher] = None,
        format: str = FORMAT_JSON,
        v2_task_metadata_url: str = AWS_ECS_V2_TASK_METADATA_URL,
        v2_task_stats_url: str = AWS_ECS_V2_TASK_STATS_URL,
    ):
        self.fetcher = fetcher or MetadataFetcher()
        self.format = format
        self.v2_task_metadata_url = v2_task_metadata_url
        self.v2_task_stats_url = v2_task_stats_url

    def fetch(self, env: Optional[Mapping[str, str]] = None) -> EcsMetadata:
        probe_result = probe_discovery_mode(env)

        if probe_result.mode == DiscoveryMode.V3:
            return self.fetch_v3(str(probe_result.container_metadata_uri))

        if probe_result.mode == DiscoveryMode.V2:
            return self.fetch_v2()

        _logger.debug("No ECS metadata endpoint found")
        return EcsMetadata()

    # https://docs.aws.amazon.com/AmazonECS/latest/developerguide/task-metadata-endpoint-v3.html
    def fetch_v3(self, container_metadata_url: str) -> EcsMetadata:
        _logger.debug("Using ECS task metadata endpoint v3")

        container_stats_url = container_metadata_url + "/stats"
        task_metadata_url = container_metadata_url + "/task"
        task_stats_url = task_metadata_url + "/stats"

        # Independent of each other, but kept in a fixed order
        container_metadata = self._fetch_or_none(container_metadata_url)
        container_stats = self._fetch_or_none(container_stats_url)
        task_metadata = self._fetch_or_none(task_metadata_url)
        task_stats = self._fetch_or_none(task_stats_url)

        return EcsMetadata(
            mode=DiscoveryMode.V3,
            container_metadata=container_metadata,
            container_stats=container_stats,
            task_metadata=task_metadata,
            task_stats=task_stats,
        )

    # https://docs.aws.amazon.com/AmazonECS/latest/developerguide/task-metadata-endpoint-v2.html
    def fetch_v2(self) -> EcsMetadata:
        _logger.debug("Using ECS task metadata endpoint v2")

        task_metadata = self._fetch_or_none(self.v2_task_metadata_url)
        task_stats = self._fetch_or_none(self.v2_task_stats_url)

        container_metadata: Optional[Any] = None
        container_stats: Optional[Any] = None

        container_id = resolve_container_id(self._as_document(task_metadata))

        if container_id:
            _logger.debug(f"Resolved primary container ID '{container_id}'")
            container_metadata = self._fetch_or_none(
                f"{self.v2_task_metadata_url}/{container_id}"
            )
            container_stats = self._fetch_or_none(
                f"{self.v2_task_stats_url}/{container_id}"
            )
        else:
            _logger.info("No primary container found in ECS task metadata")

        return EcsMetadata(
            mode=DiscoveryMode.V2,
            container_metadata=container_metadata,
            container_stats=container_stats,
            task_metadata=task_metadata,
            task_stats=task_stats,
        )

    def _fetch_or_none(self, url: str) -> Optional[Any]:
        try:
            return self.fetcher.fetch(url, format=self.format)
        except MetadataFetchError as ex:
            _logger.warning(f"Unable to fetch ECS metadata: {ex}")
            return None

    def _as_document(self, value: Optional[Any]) -> Optional[Any]:
        if (self.format != FORMAT_TEXT) or (value is None):
            return value

        try:
            return parse_json(value)
        except ValueError:
            _logger.info("ECS task metadata is not valid JSON")
            return None


# https://docs.aws.amazon.com/AWSEC2/latest/UserGuide/instancedata-data-retrieval.html
class AwsEc2MetadataFetcher:
    """
    Fetches the instance identity document from the EC2 instance metadata
    service, using a session token (IMDSv2).
    """

    def __init__(
        self,
        timeout: float = DEFAULT_METADATA_TIMEOUT_SECONDS,
        enabled: bool = True,
        service_endpoint: Optional[str] = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.timeout = timeout
        self.enabled = enabled
        self.service_endpoint = service_endpoint
        self.session_factory = session_factory

    def fetch(self, env: Optional[Mapping[str, str]] = None) -> Optional[dict[str, Any]]:
        if env is None:
            env = os.environ

        if not self.enabled:
            return None

        if string_to_bool(env.get(ENV_AWS_EC2_METADATA_DISABLED), default_value=False):
            _logger.debug("EC2 metadata lookup disabled by environment")
            return None

        base_url = (
            self.service_endpoint
            or env.get(ENV_AWS_EC2_METADATA_SERVICE_ENDPOINT)
            or AWS_EC2_METADATA_SERVICE_ENDPOINT
        ).rstrip("/") + "/latest"

        try:
            with self.session_factory() as session:
                # The service is link-local, never reached through a proxy
                session.trust_env = False
                token = self._fetch_token(session, base_url)
                return self._fetch_identity_document(session, base_url, token)
        except requests.exceptions.RequestException as ex:
            _logger.info(f"EC2 instance metadata not available: {ex}")
            return None

    def _fetch_token(self, session: requests.Session, base_url: str) -> str:
        resp = session.put(
            f"{base_url}/api/token",
            headers={
                AWS_EC2_METADATA_TOKEN_TTL_HEADER: str(AWS_EC2_METADATA_TOKEN_TTL_SECONDS)
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.text

    def _fetch_identity_document(
        self, session: requests.Session, base_url: str, token: str
    ) -> Optional[dict[str, Any]]:
        resp = session.get(
            f"{base_url}/dynamic/instance-identity/document",
            headers={AWS_EC2_METADATA_TOKEN_HEADER: token},
            timeout=self.timeout,
        )
        resp.raise_for_status()

        try:
            doc = json.loads(resp.content)
        except ValueError:
            _logger.warning("Unable to decode EC2 instance identity document")
            return None

        if not isinstance(doc, dict):
            _logger.warning("EC2 instance identity document is not a JSON object")
            return None

        return doc


# https://docs.aws.amazon.com/AmazonECS/latest/developerguide/container-metadata.html
def read_container_metadata_file(
    env: Optional[Mapping[str, str]] = None,
) -> Optional[Any]:
    if env is None:
        env = os.environ

    filename = env.get(ENV_ECS_CONTAINER_METADATA_FILE)

    if not filename:
        return None

    try:
        with open(filename, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as ex:
        _logger.info(f"Unable to read ECS container metadata file '{filename}': {ex}")
        return None
