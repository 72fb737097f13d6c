[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "acistore"
version = "0.1.0"
description = "Content-addressable storage for container images (ACIs), with network configuration helpers and static IP address management for containers."
requires-python = ">=3.10"
dependencies = [
    "filelock",
]
keywords = [
    "aci",
    "containers",
    "content-addressable-storage",
    "image-store",
    "ipam",
    "networking",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Software Distribution",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
acistore-static-ipam = "acistore.plugin:main"

[tool.hatch.build.targets.wheel]
packages = ["acistore"]

[tool.hatch.build.targets.sdist]
include = [
    "acistore",
    "tests",
    "pyproject.toml",
]

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
