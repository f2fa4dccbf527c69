"""Shared constants for pushbuilder."""

SHORT_SHA_LENGTH = 8
REPOSITORY_SUFFIX = ".git"

DOCKERFILE_NAME = "Dockerfile"
PROCFILE_NAME = "Procfile"
RELEASE_FILE_NAME = ".release"
ARTIFACT_NAME = "slug.tgz"

BUILD_DIR_NAME = "build"
CACHE_DIR_NAME = "cache"
LOCK_FILE_NAME = "build.lock"

CONTAINER_APP_DIR = "/tmp/app"
CONTAINER_CACHE_DIR = "/tmp/cache"
CONTAINER_ARTIFACT_PATH = f"/tmp/{ARTIFACT_NAME}"

AUTH_HEADER = "X-Deis-Builder-Auth"
CONFIG_HOOK_PATH = "/v1/hooks/config"
BUILD_HOOK_PATH = "/v1/hooks/build"

# group rwx on directories (plus setgid so new entries inherit the group), rw on files
SHARED_DIR_BITS = 0o2070
SHARED_FILE_BITS = 0o060

# full or abbreviated object name, sha1 or sha256
OBJECT_NAME_PATTERN = r"[0-9a-fA-F]{4,64}"
