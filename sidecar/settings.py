"""
This module contains the default configuration settings for the worker sidecar.
It defines the launch mode, the commands to run, the health server and shutdown
timings, and the logging configuration. Values here are defaults only; the
settings listed in ENV_OVERRIDABLE_SETTINGS can be overridden from the environment.
"""

from dotenv import load_dotenv

# Load a local .env file. Variables already set by the platform take precedence.
load_dotenv(override=False)

#* --- Launch Mode ---
# 'worker' runs the supervised worker with a health sidecar, anything else runs the server.
MODE = "server"
WORKER_MODE = "worker"
SERVER_MODE = "server"

#* --- Commands ---
SERVER_COMMAND = "pnpm start"
WORKER_COMMAND = "pnpm start-worker"
WORKER_CWD = ""  # Empty means the launcher's own working directory
CAPTURE_WORKER_OUTPUT = True

#* --- Health Server Settings ---
HEALTH_HOST = "0.0.0.0"
PORT = 3000
HEALTH_PATHS = ("/", "/health")
PROBE_TIMEOUT_SECONDS = 2.0
LISTENER_STARTUP_TIMEOUT = 15  # seconds

#* --- Shutdown Settings ---
SERVER_GRACEFUL_TIMEOUT = 5     # seconds for in-flight health checks
GRACEFUL_SHUTDOWN_TIMEOUT = 10  # seconds before force-killing the worker

#* --- Logging ---
LOG_LEVEL = "INFO"
LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'
WORKER_LOGGER_NAME = "proc.worker"

# Grafana Loki (for observability)
LOKI_ENABLED = False
LOKI_URL = "http://localhost:3100"
LOKI_ORG_ID = "fake"
LOKI_JOB_NAME = "worker-sidecar"
LOG_BUFFER_FLUSH_INTERVAL = 10
LOKI_BATCH_SIZE = 200

#* --- Process ---
PROCESS_TITLE = "Sidecar - Supervisor"

#* --- ENVIRONMENT OVERRIDABLE SETTINGS ---
ENV_OVERRIDABLE_SETTINGS = {
    # Launch
    "MODE", "SERVER_COMMAND", "WORKER_COMMAND", "WORKER_CWD", "CAPTURE_WORKER_OUTPUT",
    # Health server
    "HEALTH_HOST", "PORT", "PROBE_TIMEOUT_SECONDS", "LISTENER_STARTUP_TIMEOUT",
    # Shutdown
    "SERVER_GRACEFUL_TIMEOUT", "GRACEFUL_SHUTDOWN_TIMEOUT",
    # Logging
    "LOG_LEVEL", "LOKI_ENABLED", "LOKI_URL", "LOKI_ORG_ID",
    "LOG_BUFFER_FLUSH_INTERVAL", "LOKI_BATCH_SIZE",
    # Process
    "PROCESS_TITLE",
}
