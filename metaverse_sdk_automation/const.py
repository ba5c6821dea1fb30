import os

API_URL = os.getenv("METAVERSE_API_URL", "")

MIN_CHUNK_SIZE = 1 * 1024 * 1024  # 1 MiB
SNIFF_PREFIX_SIZE = 3072

DEFAULT_BINARY_MIME = "application/octet-stream"
TEXT_MIME = "text/plain; charset=utf-8"
JSON_MIME = "application/json"

MULTIPART_FILE_FIELD = "file"

TASK_UPLOAD_PACKAGE_SOURCE = "uploadPackageSource"
TASK_UNZIP_PACKAGE_SOURCE = "unzipPackageSource"
TASK_UPDATE_SDK = "updateSDK"
SUPPORTED_TASKS = (
    TASK_UPLOAD_PACKAGE_SOURCE,
    TASK_UNZIP_PACKAGE_SOURCE,
    TASK_UPDATE_SDK,
)

LOG_FILE = "metaverse-sdk-automation.log"
USAGE_EXIT_CODE = -1
