[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "repoforge"
version = "0.1.0"
description = "Track, sync, prune and health-check a fleet of git repositories from a SQLite state database"
requires-python = ">=3.10"
dependencies = []
keywords = ["git", "repositories", "sync", "sqlite", "devops", "orchestration"]
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
    "Topic :: Software Development :: Version Control :: Git",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["repoforge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
