import argparse
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .common_constants import ECS_METADATA_FORMATS, FORMAT_JSON, FORMAT_TEXT
from .common_utils import coalesce, string_to_bool, string_to_float, string_to_int

DEFAULT_LOG_LEVEL = "INFO"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 42011
DEFAULT_METADATA_TIMEOUT_SECONDS = 5.0

ENV_VAR_PREFIX = "HOST_INTROSPECTOR_"

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())


@dataclass
class IntrospectorParamValidationErrors:
    errors: dict[str, list[str]]
    warnings: dict[str, list[str]]

    def log(self):
        if len(self.errors) > 0:
            _logger.error(f"host_introspector param errors = {self.errors}")
        else:
            _logger.debug("No host_introspector param errors")

        if len(self.warnings) > 0:
            _logger.warning(f"host_introspector param warnings = {self.warnings}")
        else:
            _logger.debug("No host_introspector param warnings")

    def is_valid(self) -> bool:
        return len(self.errors) == 0


class IntrospectorParams:
    """
    Settings for the introspector.

    Values are taken from defaults first, then from HOST_INTROSPECTOR_*
    environment variables, and finally from the command line when an
    instance is passed to ArgumentParser.parse_args() as the namespace.

    Args:
        override_from_env (bool, optional): Whether to read the environment. Defaults to True.
        env (Mapping[str, str], optional): Environment to read instead of os.environ.
    """

    def __init__(
        self,
        override_from_env: bool = True,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.version: bool = False
        self.server: bool = False
        self.host: str = DEFAULT_HOST
        self.port: int = DEFAULT_PORT
        self.compact: bool = False
        self.metadata_timeout: float = DEFAULT_METADATA_TIMEOUT_SECONDS
        self.ecs_metadata_format: str = FORMAT_JSON
        self.fetch_ec2_metadata: bool = True
        self.log_level: str = DEFAULT_LOG_LEVEL

        if override_from_env:
            self.override_params_from_env(env=coalesce(env, os.environ))

    def override_params_from_env(self, env: Mapping[str, str]) -> None:
        self.server = (
            string_to_bool(env.get(ENV_VAR_PREFIX + "SERVER"), default_value=self.server)
            or False
        )

        self.host = env.get(ENV_VAR_PREFIX + "HOST", self.host)

        port_str = env.get(ENV_VAR_PREFIX + "PORT")
        if port_str:
            try:
                self.port = coalesce(string_to_int(port_str), self.port)
            except ValueError:
                _logger.warning(f"Ignoring invalid port '{port_str}'")

        self.compact = (
            string_to_bool(
                env.get(ENV_VAR_PREFIX + "COMPACT"), default_value=self.compact
            )
            or False
        )

        timeout_str = env.get(ENV_VAR_PREFIX + "METADATA_TIMEOUT_SECONDS")
        if timeout_str:
            try:
                self.metadata_timeout = coalesce(
                    string_to_float(timeout_str), self.metadata_timeout
                )
            except ValueError:
                _logger.warning(f"Ignoring invalid metadata timeout '{timeout_str}'")

        self.ecs_metadata_format = env.get(
            ENV_VAR_PREFIX + "ECS_METADATA_FORMAT", self.ecs_metadata_format
        )

        self.fetch_ec2_metadata = (
            string_to_bool(
                env.get(ENV_VAR_PREFIX + "FETCH_EC2_METADATA"),
                default_value=self.fetch_ec2_metadata,
            )
            or False
        )

        self.log_level = env.get(ENV_VAR_PREFIX + "LOG_LEVEL", self.log_level)

    def sanitize_and_validate(self) -> IntrospectorParamValidationErrors:
        errors: dict[str, list[str]] = {}
        warnings: dict[str, list[str]] = {}

        if (self.port <= 0) or (self.port > 65535):
            self._push_error(errors, "port", f"Port {self.port} is out of range.")

        if self.metadata_timeout <= 0.0:
            self._push_error(
                warnings,
                "metadata_timeout",
                f"Metadata timeout {self.metadata_timeout} must be positive.",
            )
            self.metadata_timeout = DEFAULT_METADATA_TIMEOUT_SECONDS

        self.ecs_metadata_format = (self.ecs_metadata_format or FORMAT_JSON).lower()
        if self.ecs_metadata_format not in ECS_METADATA_FORMATS:
            self._push_error(
                errors,
                "ecs_metadata_format",
                f"ECS metadata format '{self.ecs_metadata_format}' is not supported.",
            )

        self.log_level = (self.log_level or DEFAULT_LOG_LEVEL).upper()

        return IntrospectorParamValidationErrors(errors=errors, warnings=warnings)

    def log_configuration(self) -> None:
        _logger.debug(f"Server mode = {self.server}")

        if self.server:
            _logger.debug(f"Listen address = {self.host}:{self.port}")
        else:
            _logger.debug(f"Compact output = {self.compact}")

        _logger.debug(f"Metadata timeout = {self.metadata_timeout}")
        _logger.debug(f"ECS metadata format = {self.ecs_metadata_format}")
        _logger.debug(f"Fetch EC2 metadata = {self.fetch_ec2_metadata}")

    @staticmethod
    def _push_error(errors: dict[str, list[str]], name: str, error: str) -> None:
        error_list = errors.get(name)
        if error_list is None:
            errors[name] = [error]
        else:
            error_list.append(error)


def make_arg_parser():
    parser = argparse.ArgumentParser(
        prog="host_introspector",
        description="""
Outputs a JSON snapshot of the host: hostname, user, group, platform,
environment, and AWS EC2/ECS metadata when available. Optionally serves the
snapshot over HTTP, recomputed for every request.
    """,
    )

    parser.add_argument(
        "-v", "--version", action="store_true", help="Print the version and exit"
    )

    server_group = parser.add_argument_group("server", "HTTP server settings")
    server_group.add_argument(
        "-s",
        "--server",
        action="store_true",
        help="Host the snapshot as an HTTP server instead of printing it once",
    )
    server_group.add_argument(
        "-p",
        "--port",
        type=int,
        help=f"The port to host the server at. Defaults to {DEFAULT_PORT}.",
    )
    server_group.add_argument(
        "--host",
        help=f"The address to bind the server to. Defaults to {DEFAULT_HOST}.",
    )

    output_group = parser.add_argument_group("output", "Output settings")
    output_group.add_argument(
        "-c",
        "--compact",
        action="store_true",
        help="Print compact JSON instead of indented JSON",
    )

    metadata_group = parser.add_argument_group("metadata", "Cloud metadata settings")
    metadata_group.add_argument(
        "--metadata-timeout",
        type=float,
        help=f"""
Timeout for each metadata request, in seconds. Defaults to
{DEFAULT_METADATA_TIMEOUT_SECONDS}.""",
    )
    metadata_group.add_argument(
        "--ecs-metadata-format",
        choices=ECS_METADATA_FORMATS,
        help=f"""
How ECS metadata responses are embedded in the snapshot. '{FORMAT_JSON}'
decodes them as objects, '{FORMAT_TEXT}' embeds the raw response text.
Defaults to '{FORMAT_JSON}'.""",
    )
    metadata_group.add_argument(
        "--no-ec2-metadata",
        action="store_false",
        dest="fetch_ec2_metadata",
        help="Do not look up the EC2 instance identity document",
    )

    log_group = parser.add_argument_group("log", "Logging settings")
    log_group.add_argument(
        "-l",
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Log level. Defaults to {DEFAULT_LOG_LEVEL}.",
    )

    return parser
