[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "beeorm"
version = "3.0.0"
description = "Query conditions, registry configuration, logged Redis access and MySQL schema alters for an entity ORM"
requires-python = ">=3.10"
keywords = ["orm", "mysql", "redis", "cache", "schema", "migrations"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Front-Ends",
]
dependencies = [
    "redis",
    "msgpack",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["beeorm"]

[tool.pytest.ini_options]
addopts = "-ra"
