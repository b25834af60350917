[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kubedock"
version = "0.1.0"
description = "Docker-API-compatible container service core with an in-memory store and a pluggable workload backend"
requires-python = ">=3.10"
dependencies = []
keywords = ["docker", "kubernetes", "containers", "docker-api", "testcontainers"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kubedock"]

[tool.hatch.build.targets.sdist]
include = ["kubedock", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
