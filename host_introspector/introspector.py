import grp
import logging
import os
import platform
import pwd
import socket
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from .common_utils import format_timestamp, utc_now
from .introspector_params import IntrospectorParams
from .metadata_fetcher import MetadataFetcher
from .runtime_metadata import (
    AwsEc2MetadataFetcher,
    AwsEcsMetadataFetcher,
    EcsMetadata,
    read_container_metadata_file,
)

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())


class LocalSystemError(Exception):
    pass


@dataclass(frozen=True)
class RuntimeContext:
    """
    Values fixed for the lifetime of the process.
    """

    start_time: datetime
    params: IntrospectorParams = field(default_factory=IntrospectorParams)

    @classmethod
    def create(cls, params: Optional[IntrospectorParams] = None) -> "RuntimeContext":
        return cls(start_time=utc_now(), params=params or IntrospectorParams())


@dataclass(frozen=True)
class Snapshot:
    start_time: str
    request_time: str
    hostname: str
    user: dict[str, Any]
    group: Optional[dict[str, Any]]
    system: dict[str, Any]
    env: dict[str, str]
    ec2_instance_metadata: Optional[dict[str, Any]] = None
    ecs_container_metadata: Optional[Any] = None
    ecs_container_stats: Optional[Any] = None
    ecs_task_metadata: Optional[Any] = None
    ecs_task_stats: Optional[Any] = None
    ecs_container_metadata_file: Optional[Any] = None

    def to_dict(self) -> dict[str, Any]:
        # Every key is always present so the output shape never changes
        return {
            "startTime": self.start_time,
            "requestTime": self.request_time,
            "hostname": self.hostname,
            "user": self.user,
            "group": self.group,
            "system": self.system,
            "env": self.env,
            "ec2InstanceMetadata": self.ec2_instance_metadata,
            "ecsContainerMetadata": self.ecs_container_metadata,
            "ecsContainerStats": self.ecs_container_stats,
            "ecsTaskMetadata": self.ecs_task_metadata,
            "ecsTaskStats": self.ecs_task_stats,
            "ecsContainerMetadataFile": self.ecs_container_metadata_file,
        }


def get_hostname() -> str:
    try:
        return socket.gethostname()
    except OSError as ex:
        raise LocalSystemError(f"Unable to determine hostname: {ex}") from ex


def get_current_user() -> dict[str, Any]:
    uid = os.getuid()
    gid = os.getgid()

    try:
        entry = pwd.getpwuid(uid)
    except KeyError:
        # Common in containers started with an arbitrary uid
        _logger.info(f"No passwd entry for uid {uid}")
        return {
            "uid": str(uid),
            "gid": str(gid),
            "username": None,
            "name": None,
            "homeDir": os.environ.get("HOME"),
        }

    return {
        "uid": str(entry.pw_uid),
        "gid": str(entry.pw_gid),
        "username": entry.pw_name,
        "name": entry.pw_gecos.split(",")[0],
        "homeDir": entry.pw_dir,
    }


def get_primary_group(gid: Optional[str]) -> Optional[dict[str, Any]]:
    if gid is None:
        return None

    try:
        name: Optional[str] = grp.getgrgid(int(gid)).gr_name
    except KeyError:
        _logger.info(f"No group entry for gid {gid}")
        name = None

    return {"gid": gid, "name": name}


def get_system_info() -> dict[str, Any]:
    uname = platform.uname()

    return {
        "os": uname.system,
        "kernel": uname.release,
        "core": uname.version,
        "platform": platform.platform(),
        "machine": uname.machine,
        "hostname": uname.node,
        "cpus": os.cpu_count(),
        "pythonVersion": platform.python_version(),
    }


class Introspector:
    """
    Assembles a Snapshot of the host and its cloud metadata.

    Fetches run one after another. A failed fetch leaves only its own field
    empty; it never aborts the rest of the snapshot.
    """

    def __init__(
        self,
        context: RuntimeContext,
        ecs_metadata_fetcher: Optional[AwsEcsMetadataFetcher] = None,
        ec2_metadata_fetcher: Optional[AwsEc2MetadataFetcher] = None,
        env_override: Optional[Mapping[str, str]] = None,
    ) -> None:
        params = context.params

        self.context = context
        self.ecs_metadata_fetcher = ecs_metadata_fetcher or AwsEcsMetadataFetcher(
            fetcher=MetadataFetcher(timeout=params.metadata_timeout),
            format=params.ecs_metadata_format,
        )
        self.ec2_metadata_fetcher = ec2_metadata_fetcher or AwsEc2MetadataFetcher(
            timeout=params.metadata_timeout, enabled=params.fetch_ec2_metadata
        )
        self.env_override = env_override

    def introspect(self) -> Snapshot:
        request_time = max(utc_now(), self.context.start_time)

        if self.env_override is None:
            env = dict(os.environ)
        else:
            env = dict(self.env_override)

        hostname = get_hostname()
        user = get_current_user()
        group = get_primary_group(user.get("gid"))
        system = get_system_info()

        ecs_metadata = self.ecs_metadata_fetcher.fetch(env)
        _logger.debug(f"ECS discovery mode = {ecs_metadata.mode.value}")

        ec2_instance_metadata = self.ec2_metadata_fetcher.fetch(env)

        return self._make_snapshot(
            request_time=request_time,
            hostname=hostname,
            user=user,
            group=group,
            system=system,
            env=env,
            ec2_instance_metadata=ec2_instance_metadata,
            ecs_metadata=ecs_metadata,
            ecs_container_metadata_file=read_container_metadata_file(env),
        )

    def _make_snapshot(
        self,
        request_time: datetime,
        hostname: str,
        user: dict[str, Any],
        group: Optional[dict[str, Any]],
        system: dict[str, Any],
        env: dict[str, str],
        ec2_instance_metadata: Optional[dict[str, Any]],
        ecs_metadata: EcsMetadata,
        ecs_container_metadata_file: Optional[Any],
    ) -> Snapshot:
        return Snapshot(
            start_time=format_timestamp(self.context.start_time),
            request_time=format_timestamp(request_time),
            hostname=hostname,
            user=user,
            group=group,
            system=system,
            env=env,
            ec2_instance_metadata=ec2_instance_metadata,
            ecs_container_metadata=ecs_metadata.container_metadata,
            ecs_container_stats=ecs_metadata.container_stats,
            ecs_task_metadata=ecs_metadata.task_metadata,
            ecs_task_stats=ecs_metadata.task_stats,
            ecs_container_metadata_file=ecs_container_metadata_file,
        )
