FORMAT_JSON = "json"
FORMAT_TEXT = "text"

ECS_METADATA_FORMATS = [FORMAT_JSON, FORMAT_TEXT]

ENV_ECS_CONTAINER_METADATA_URI = "ECS_CONTAINER_METADATA_URI"
ENV_AWS_EXECUTION_ENV = "AWS_EXECUTION_ENV"
ENV_ECS_CONTAINER_METADATA_FILE = "ECS_CONTAINER_METADATA_FILE"
ENV_AWS_EC2_METADATA_DISABLED = "AWS_EC2_METADATA_DISABLED"
ENV_AWS_EC2_METADATA_SERVICE_ENDPOINT = "AWS_EC2_METADATA_SERVICE_ENDPOINT"

AWS_EXECUTION_ENV_ECS_EC2 = "AWS_ECS_EC2"

AWS_ECS_V2_TASK_METADATA_URL = "http://169.254.170.2/v2/metadata"
AWS_ECS_V2_TASK_STATS_URL = "http://169.254.170.2/v2/stats"

# Instance metadata service v2 (session token required)
AWS_EC2_METADATA_SERVICE_ENDPOINT = "http://169.254.169.254"
AWS_EC2_METADATA_TOKEN_HEADER = "X-aws-ec2-metadata-token"
AWS_EC2_METADATA_TOKEN_TTL_HEADER = "X-aws-ec2-metadata-token-ttl-seconds"
AWS_EC2_METADATA_TOKEN_TTL_SECONDS = 21600

ECS_CONTAINERS_KEY = "Containers"
ECS_CONTAINER_TYPE_KEY = "Type"
ECS_CONTAINER_DOCKER_ID_KEY = "DockerId"
ECS_CONTAINER_TYPE_NORMAL = "NORMAL"

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
