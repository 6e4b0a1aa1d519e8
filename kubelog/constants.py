"""
Constants and configuration for Kubelog.

Constants are organized by category:
- Log streaming: Remote log request options and read sizes
- Server defaults: Default host and port configurations
- Logging: Default log levels
- Environment: Names of the environment variables read at startup
- Validation: Limits applied to user-supplied values
"""

# Log streaming
DEFAULT_TAIL_LINES = 100
DEFAULT_CONTAINER_LABEL = "default"
STREAM_ID_SEPARATOR = "/"
LOG_STREAM_CHUNK_SIZE = 4096
STREAM_THREAD_PREFIX = "kubelog-stream"

# One-shot log fetch
DEFAULT_FETCH_TAIL_LINES = 500
FETCH_LOGS_TIMEOUT_SECONDS = 30

# Server defaults
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080
SERVICE_NAME = "kubelog"

# Logging
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_UVICORN_LOG_LEVEL = "info"
LOG_FORMAT = "[%(asctime)s] %(levelname)s %(message)s"

# Environment variables
ENV_HOST = "KUBELOG_HOST"
ENV_PORT = "KUBELOG_PORT"
ENV_LOG_LEVEL = "KUBELOG_LOG_LEVEL"
ENV_UVICORN_LEVEL = "KUBELOG_UVICORN_LEVEL"
ENV_TAIL_LINES = "KUBELOG_TAIL_LINES"

# Kubeconfig
DEFAULT_NAMESPACE = "default"
IN_CLUSTER_CONTEXT = "in-cluster"
SERVICE_ACCOUNT_NAMESPACE_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"

# Validation limits
MAX_TAIL_LINES = 10000
MAX_NAME_LENGTH = 253
