import logging
import sys

from host_introspector import (
    DEFAULT_LOG_LEVEL,
    Introspector,
    IntrospectorParams,
    ResponseEncoder,
    RuntimeContext,
    __version__,
    make_arg_parser,
)
from host_introspector.server import serve

_EXIT_CODE_GENERIC_ERROR = 1
_EXIT_CODE_CONFIGURATION_ERROR = 78


def write_introspection(context: RuntimeContext) -> None:
    snapshot = Introspector(context=context).introspect()
    indent = None if context.params.compact else 2
    sys.stdout.buffer.write(ResponseEncoder().encode(snapshot, indent=indent))
    sys.stdout.flush()


def main():
    # Start time is fixed before anything else runs
    start_context = RuntimeContext.create(params=IntrospectorParams())

    main_parser = make_arg_parser()
    main_args = main_parser.parse_args(namespace=start_context.params)

    if main_args.version:
        print(f"host_introspector v{__version__}")
        sys.exit(0)

    validation_errors = main_args.sanitize_and_validate()

    numeric_log_level = getattr(logging, main_args.log_level, None)
    valid_log_level = isinstance(numeric_log_level, int)

    if not valid_log_level:
        numeric_log_level = getattr(logging, DEFAULT_LOG_LEVEL, logging.INFO)

    logging.basicConfig(
        level=numeric_log_level,
        format="HOST_INTROSPECTOR: %(asctime)s %(levelname)s: %(message)s",
    )

    if not valid_log_level:
        logging.warning(
            f"Invalid log level: {main_args.log_level}, defaulting to {DEFAULT_LOG_LEVEL}"
        )

    if numeric_log_level < logging.INFO:
        # Disable urllib3 DEBUG logging of every connection attempt
        logging.getLogger("urllib3").setLevel(logging.INFO)

    validation_errors.log()

    if not validation_errors.is_valid():
        sys.exit(_EXIT_CODE_CONFIGURATION_ERROR)

    main_args.log_configuration()

    try:
        if main_args.server:
            serve(start_context)
        else:
            write_introspection(start_context)
    except Exception as ex:
        logging.exception("Introspection failed")
        print(f"host_introspector: {ex}", file=sys.stderr)
        sys.exit(_EXIT_CODE_GENERIC_ERROR)


if __name__ == "__main__":
    main()
