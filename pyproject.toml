[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sbombastic"
version = "0.1.0"
description = "Registry discovery, SBOM generation and vulnerability scanning reconcilers for container images"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "sbom",
    "spdx",
    "sarif",
    "vulnerability",
    "container",
    "registry",
    "reconciler",
]
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
    "Topic :: Security",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sbombastic"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
