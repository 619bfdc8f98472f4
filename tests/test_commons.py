import json
import socket
from typing import Any, Dict, List, Mapping, Optional

from pytest_httpserver import HTTPServer
from werkzeug.wrappers import Request, Response

from host_introspector import RuntimeContext
from host_introspector.introspector_params import IntrospectorParams

ACCEPT_JSON_HEADERS = {
    "Accept": "application/json",
}

TEST_ECS_TASK_METADATA = {
    "Cluster": "default",
    "TaskARN": "arn:aws:ecs:us-east-2:012345678910:task/9781c248-0edd-4cdb-9a93-f63cb662a5d3",
    "Family": "nginx",
    "Revision": "5",
    "DesiredStatus": "RUNNING",
    "KnownStatus": "RUNNING",
    "Limits": {"CPU": 0.25, "Memory": 512},
    "Containers": [
        {
            "DockerId": "731a0d6a3b4210e2448339bc7015aaa79bfe4fa256384f4102db86ef94cbbc4c",
            "Name": "~internal~ecs~pause",
            "DockerName": "ecs-nginx-5-internalecspause-acc699c0cbf2d6d11700",
            "Image": "amazon/amazon-ecs-pause:0.1.0",
            "ImageID": "",
            "DesiredStatus": "RESOURCES_PROVISIONED",
            "KnownStatus": "RESOURCES_PROVISIONED",
            "Limits": {"CPU": 0, "Memory": 0},
            "Type": "CNI_PAUSE",
            "Networks": [{"NetworkMode": "awsvpc", "IPv4Addresses": ["10.0.2.106"]}],
        },
        {
            "DockerId": "43481a6ce4842eec8fe72fc28500c6b52edcc0917f105b83379f88cac1ff3946",
            "Name": "nginx-curl",
            "DockerName": "ecs-nginx-5-nginx-curl-ccccb9f49db0dfe0d901",
            "Image": "nrdlngr/nginx-curl",
            "ImageID": "sha256:2e00ae64383cfc865ba0a2ba37f61b50a120d2d9378559dcd458dc0de47bc165",
            "DesiredStatus": "RUNNING",
            "KnownStatus": "RUNNING",
            "Limits": {"CPU": 512, "Memory": 512},
            "Type": "NORMAL",
            "Networks": [{"NetworkMode": "awsvpc", "IPv4Addresses": ["10.0.2.106"]}],
        },
    ],
    "PullStartedAt": "2018-02-01T20:55:09.372495529Z",
    "PullStoppedAt": "2018-02-01T20:55:10.552018345Z",
    "AvailabilityZone": "us-east-2b",
}

TEST_ECS_PRIMARY_DOCKER_ID = (
    "43481a6ce4842eec8fe72fc28500c6b52edcc0917f105b83379f88cac1ff3946"
)

TEST_ECS_CONTAINER_METADATA = {
    "DockerId": TEST_ECS_PRIMARY_DOCKER_ID,
    "Name": "nginx-curl",
    "DockerName": "ecs-nginx-5-nginx-curl-ccccb9f49db0dfe0d901",
    "Image": "nrdlngr/nginx-curl",
    "Limits": {"CPU": 512, "Memory": 512},
    "Type": "NORMAL",
}

TEST_ECS_CONTAINER_STATS = {
    "read": "2020-10-08T20:09:12.123456789Z",
    "cpu_stats": {"cpu_usage": {"total_usage": 1234567}},
    "memory_stats": {"usage": 4096000, "limit": 536870912},
}

TEST_ECS_TASK_STATS = {
    TEST_ECS_PRIMARY_DOCKER_ID: TEST_ECS_CONTAINER_STATS,
}

TEST_EC2_INSTANCE_IDENTITY_DOCUMENT = {
    "accountId": "123456789012",
    "architecture": "x86_64",
    "availabilityZone": "us-east-2b",
    "imageId": "ami-0123456789abcdef0",
    "instanceId": "i-0123456789abcdef0",
    "instanceType": "t3.micro",
    "pendingTime": "2024-01-01T00:00:00Z",
    "privateIp": "10.0.2.106",
    "region": "us-east-2",
    "version": "2017-09-30",
}


def make_capturing_handler(response_data: Optional[Any], status: int = 200):
    captured_request_paths: List[str] = []

    def handler(request: Request) -> Response:
        captured_request_paths.append(request.path)

        if response_data is not None:
            return Response(
                json.dumps(response_data), status, None, content_type="application/json"
            )
        else:
            return Response(None, status, None)

    def fetch_captured_request_paths() -> List[str]:
        return captured_request_paths

    return handler, fetch_captured_request_paths


TEST_EC2_TOKEN = "AQAEAFAKETOKEN=="


def expect_ec2_identity_requests(
    httpserver: HTTPServer, document: Optional[Any] = None, token_status: int = 200
) -> None:
    httpserver.expect_ordered_request(
        "/latest/api/token",
        method="PUT",
        headers={"X-aws-ec2-metadata-token-ttl-seconds": "21600"},
    ).respond_with_data(TEST_EC2_TOKEN, status=token_status)

    if token_status == 200:
        httpserver.expect_ordered_request(
            "/latest/dynamic/instance-identity/document",
            method="GET",
            headers={"X-aws-ec2-metadata-token": TEST_EC2_TOKEN},
        ).respond_with_json(
            TEST_EC2_INSTANCE_IDENTITY_DOCUMENT if document is None else document
        )


def count_requests(httpserver: HTTPServer, path_prefix: str) -> int:
    return len(
        [request for request, _ in httpserver.log if request.path.startswith(path_prefix)]
    )


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def make_test_env(extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    env = {
        "AWS_EC2_METADATA_DISABLED": "true",
        "LANG": "C.UTF-8",
        "GREETING": "<héllo & welcome>",
    }

    if extra:
        env.update(extra)

    return env


def make_test_context(env: Optional[Mapping[str, str]] = None) -> RuntimeContext:
    return RuntimeContext.create(
        params=IntrospectorParams(override_from_env=(env is not None), env=env)
    )
