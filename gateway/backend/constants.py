APP_NAME = "Streaming LLM Gateway"
APP_VERSION = "1.0.0"
DEFAULT_CORS_ALLOW_ORIGINS = [
	"http://localhost",
	"http://127.0.0.1",
	"http://localhost:3000",
]
DEFAULT_TRUSTED_HOSTS = [
	"127.0.0.1",
	"localhost",
	"testserver",
]

UPSTREAM_MODES = ("stream", "batch")
DEFAULT_UPSTREAM_MODE = "stream"
DEFAULT_STREAM_URL = "http://localhost:11434/api/chat"
DEFAULT_STREAM_MODEL = "deepseek-r1:1.5b"
DEFAULT_CHUNK_TIMEOUT_S = 10.0
DEFAULT_HEADER_TIMEOUT_S = 120.0
DEFAULT_BATCH_MODEL = "deepseek-reasoner"
DEFAULT_BATCH_TIMEOUT_S = 300.0

DEFAULT_RATE_LIMIT = 5
DEFAULT_RATE_WINDOW_S = 60.0
DEFAULT_SWEEP_INTERVAL_S = 60.0
LOCK_SHARDS = 64

DEFAULT_MAX_MESSAGES = 50
DEFAULT_MAX_CONTENT_CHARS = 32000

REASONING_START_MARKER = "<think>"
REASONING_END_MARKER = "</think>"
NATURAL_CHUNK_SOFT_CAP = 100

CHUNK_TIMEOUT_MESSAGE = "Chunk timeout"
UPSTREAM_ADVICE = (
	"Check that the inference backend is running and try reducing the size of the request."
)
