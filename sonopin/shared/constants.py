"""
Shared constants used across the platform.
"""

# Store layout
STORE_DIR_NAME = ".sonopin"
VERSION_FILENAME = "version"
REMOTE_CONFIG_FILENAME = "remote.json"
OBJECTS_DIR_NAME = "objects"
CHECKOUTS_DIR_NAME = "checkouts"
REFS_FILENAME = "refs"
DIFFS_FILENAME = "diffs.json"
ARCHIVE_FILENAME = "pin.tar.gz"

# Archive entries
ARCHIVE_MESSAGE_ENTRY = "message"
ARCHIVE_DIFFS_ENTRY = "diffs.json"
ARCHIVE_FILES_PREFIX = "files/"
ARCHIVE_ENTRY_MODE = 0o644

# Versions
INITIAL_MAJOR = 0
INITIAL_MINOR = 1
DEFAULT_PIN_MESSAGE = "Pinned version {version}"
INITIAL_PIN_MESSAGE = "Initial version {version}"

# Audio formats
TRACKED_AUDIO_EXTENSION = ".wav"
SUPPORTED_BIT_DEPTHS = (16, 32)

# soundfile subtype -> (bit depth, is_float)
SAMPLE_SUBTYPES = {
    "PCM_16": (16, False),
    "PCM_32": (32, False),
    "FLOAT": (32, True),
}

# Patch artifacts
PATCH_ADDITION = "a"
PATCH_SUBTRACTION = "s"
PATCH_SUFFIX = ".bin"
PATCH_NAME_TEMPLATE = "{basename}_{op}_offset{offset}_len{length}" + PATCH_SUFFIX

# Server settings
API_PREFIX = "/api/v1"
DEFAULT_SERVER_PORT = 6969
DEFAULT_DATA_DIR = "./sonopin-data"
PROJECTS_DIR_NAME = "projects"
DEFAULT_SHUTDOWN_GRACE_SECONDS = 5
DEFAULT_MAX_CONCURRENT_REQUESTS = 256

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds
DEFAULT_DOWNLOAD_CHUNK_SIZE = 8192  # bytes
