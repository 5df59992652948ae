[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "simfs"
version = "0.1.0"
description = "A small Unix-style file system with a redo log, kept in memory, plus an image builder and simple text tools"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "filesystem",
    "inode",
    "buffer-cache",
    "write-ahead-log",
    "disk-image",
    "simulation",
    "education",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
simfs-mkfs = "simfs.mkfs:main"
simfs-grep = "simfs.grep:main"

[tool.hatch.build.targets.wheel]
packages = ["simfs"]

[tool.hatch.build.targets.sdist]
include = ["simfs", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
