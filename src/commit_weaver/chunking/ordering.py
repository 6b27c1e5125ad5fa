"""
Dependency-based ordering of changed files.

:func:`file_priority` maps a path to a rank; lower ranks are committed
first. The table mirrors how a project is usually built up: manifests
and configuration, then shared code and models, then the code that
uses them, and finally tests, deployment and documentation.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath


MANIFEST = 0
CONFIG_FILE = 1
SETTINGS_MODULE = 10
PACKAGE_ROOT = 15
SHARED = 20
MODELS = 30
SERVICES = 40
DEFAULT = 45
CLIENTS = 50
HANDLERS = 60
ENTRY_POINT = 70
CLI = 75
TESTS = 80
DEPLOYMENT = 90
DOCS = 100

_MANIFESTS = {
    "cargo.toml", "cargo.lock", "package.json", "package-lock.json", "yarn.lock",
    "pnpm-lock.yaml", "pyproject.toml", "setup.py", "setup.cfg", "poetry.lock",
    "pipfile", "pipfile.lock", "go.mod", "go.sum", "gemfile", "gemfile.lock",
    "pom.xml", "build.gradle", "build.gradle.kts", "settings.gradle",
    "composer.json", "makefile", "cmakelists.txt", "tsconfig.json",
}
_CONFIG_FILES = {
    ".gitignore", ".gitattributes", ".editorconfig", ".prettierrc", ".eslintrc",
    ".eslintrc.json", ".flake8", ".pylintrc", "rustfmt.toml", "clippy.toml",
    ".env", ".env.example", "tox.ini", "mypy.ini", "pytest.ini", ".pre-commit-config.yaml",
}
_CONFIG_EXTENSIONS = {".toml", ".yaml", ".yml", ".ini", ".cfg", ".json", ".conf"}
_DEPLOYMENT_FILES = {
    "dockerfile", "docker-compose.yml", "docker-compose.yaml", ".gitlab-ci.yml",
    ".travis.yml", "jenkinsfile", "procfile", "vercel.json", "netlify.toml", "fly.toml",
}
_DEPLOYMENT_DIRS = {".github", ".circleci", ".gitlab", "deploy", "deployment", "k8s", "helm", "infra"}
_DOC_EXTENSIONS = {".md", ".rst", ".adoc"}
_DOC_DIRS = {"docs", "doc", "documentation"}
_TEST_DIRS = {"tests", "test", "__tests__", "spec", "specs"}

# (stems, directory names, rank); checked in order
_TIERS = (
    ({"config", "configuration", "settings", "constants", "consts", "env"}, {"config", "settings", "conf"}, SETTINGS_MODULE),
    ({"__init__", "mod", "lib", "index"}, set(), PACKAGE_ROOT),
    ({"utils", "util", "common", "shared", "helpers", "helper", "errors", "error", "exceptions"},
     {"utils", "util", "common", "shared", "helpers", "lib"}, SHARED),
    ({"models", "model", "types", "schemas", "schema", "entities", "domain", "dto"},
     {"models", "types", "schemas", "entities", "domain"}, MODELS),
    ({"service", "services", "core", "engine"}, {"services", "core", "engine"}, SERVICES),
    ({"client", "clients", "api", "integration", "integrations", "adapter", "adapters"},
     {"clients", "integrations", "adapters", "api"}, CLIENTS),
    ({"routes", "router", "routers", "handlers", "handler", "controllers", "controller", "views", "endpoints"},
     {"routes", "routers", "handlers", "controllers", "views", "endpoints"}, HANDLERS),
    ({"main", "__main__", "app", "server", "wsgi", "asgi"}, set(), ENTRY_POINT),
    ({"cli", "commands", "command"}, {"commands", "cli", "cmd", "bin"}, CLI),
)

_TEST_NAME = re.compile(r"(^test_|_test$|\.test$|\.spec$|^conftest$)")


def file_priority(path: str) -> int:
    """Return the commit-order rank of ``path`` (lower commits earlier)."""
    pure = PurePosixPath(path.replace("\\", "/"))
    name = pure.name.lower()
    stem = pure.stem.lower()
    suffix = pure.suffix.lower()
    dirs = {part.lower() for part in pure.parts[:-1]}

    if suffix in _DOC_EXTENSIONS or dirs & _DOC_DIRS or name.startswith(("license", "changelog", "readme")):
        return DOCS
    if name in _DEPLOYMENT_FILES or name.startswith("docker-compose") or dirs & _DEPLOYMENT_DIRS:
        return DEPLOYMENT
    if dirs & _TEST_DIRS or _TEST_NAME.search(stem):
        return TESTS
    if name in _MANIFESTS or name.startswith("requirements"):
        return MANIFEST
    if name in _CONFIG_FILES or (suffix in _CONFIG_EXTENSIONS and not dirs):
        return CONFIG_FILE

    for stems, _, rank in _TIERS:
        if stem in stems:
            return rank
    parent = pure.parent.name.lower()
    for stems, directories, rank in _TIERS:
        if parent in directories:
            return rank
    return DEFAULT
