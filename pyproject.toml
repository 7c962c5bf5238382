[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dicekv"
version = "0.1.0"
description = "The core of an in-memory key-value store: expiry, eviction, an append-only file and a small SQL-like query language"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "database", "in-memory", "cache", "query", "eviction", "aof"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["dicekv"]

[tool.pytest.ini_options]
addopts = "-ra"
