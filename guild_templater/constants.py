"""Shared constants for the Discord guild template executor."""

# Discord REST API
DISCORD_API_BASE = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (https://github.com/guild-templater/guild-templater, 0.1.0)"

# HTTP status codes
HTTP_OK = 200
HTTP_CREATED = 201
HTTP_NO_CONTENT = 204
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_RATE_LIMIT = 429
HTTP_SERVER_ERROR_MIN = 500

# Discord channel type ids
DISCORD_CHANNEL_TYPE_TEXT = 0
DISCORD_CHANNEL_TYPE_VOICE = 2
DISCORD_CHANNEL_TYPE_CATEGORY = 4
DISCORD_CHANNEL_TYPE_ANNOUNCEMENT = 5
DISCORD_CHANNEL_TYPE_STAGE = 13
DISCORD_CHANNEL_TYPE_FORUM = 15

# Template field limits
MAX_SLOWMODE_SECONDS = 21600
MIN_BITRATE = 8000
MAX_BITRATE = 384000
MAX_USER_LIMIT = 99
MAX_ROLE_COLOR = 0xFFFFFF

# Orchestrator defaults (seconds)
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
POST_SERVER_CREATION_DELAY = 3.0
ROLE_CREATION_DELAY = 0.8
CATEGORY_CREATION_DELAY = 1.0
CHANNEL_CREATION_DELAY = 0.6

# Transport retry defaults (seconds)
TRANSPORT_INITIAL_DELAY = 1.0
TRANSPORT_MAX_DELAY = 10.0
TRANSPORT_BACKOFF_MULTIPLIER = 2.0
TRANSPORT_JITTER_RATIO = 0.25

DEFAULT_CHANNEL_CONCURRENCY = 4
DEFAULT_REQUEST_TIMEOUT = 30
DEFAULT_SCRIPT_TIMEOUT = 30
DEFAULT_PROGRESS_QUEUE_SIZE = 1000

# Environment variables
ENV_BOT_TOKEN = "DISCORD_BOT_TOKEN"
ENV_DEFAULT_GUILD_ID = "DISCORD_DEFAULT_GUILD_ID"

# Guild pre-flight thresholds
EXISTING_CHANNEL_WARNING = 10
EXISTING_ROLE_WARNING = 200

# Output
DEFAULT_OUTPUT_ROOT = "guild_templater_output"
REPORT_FILENAME = "execution_report.yaml"
