"""Configuration for the messaging service."""

import os

from dotenv import load_dotenv

# Local env files win over nothing, never over the real environment.
load_dotenv(dotenv_path=".env.local", override=False)
load_dotenv(dotenv_path=".env", override=False)

ENV = os.getenv("ENV", "development")

# "mongo" for the Motor-backed repositories, "memory" for the in-process store.
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "mongo").lower()

MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "wellness_messaging")

# Redis pub/sub fan-out across instances. Unset means local delivery only.
REDIS_URL = os.getenv("REDIS_URL")

JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# User directory (profiles and contacts)
DIRECTORY_BASE_URL = os.getenv("DIRECTORY_BASE_URL", "http://localhost:8082/usuarios").rstrip("/")
DIRECTORY_TIMEOUT_SECONDS = float(os.getenv("DIRECTORY_TIMEOUT_SECONDS", "5"))

# Overall deadline for summary/detail aggregates.
READ_DEADLINE_SECONDS = float(os.getenv("READ_DEADLINE_SECONDS", "10"))

MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", "5000"))


ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()]

# Domain events for observers outside this service.
EVENTS_EXCHANGE = os.getenv("EVENTS_EXCHANGE", "messaging.exchange")
ROUTING_KEY_MESSAGE_SENT = os.getenv("ROUTING_KEY_MESSAGE_SENT", "message.sent")
ROUTING_KEY_MESSAGE_READ = os.getenv("ROUTING_KEY_MESSAGE_READ", "message.read")

DELIVERY_QUEUE_SIZE = int(os.getenv("DELIVERY_QUEUE_SIZE", "1000"))
# Per-socket send limit; a session that misses it is dropped.
DELIVERY_SEND_TIMEOUT_SECONDS = float(os.getenv("DELIVERY_SEND_TIMEOUT_SECONDS", "5"))
# Upper bound on flushing the queue at shutdown.
DELIVERY_SHUTDOWN_TIMEOUT_SECONDS = float(os.getenv("DELIVERY_SHUTDOWN_TIMEOUT_SECONDS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s %(levelname)s [%(name)s] %(message)s")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
