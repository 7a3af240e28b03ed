[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "bazuka"
version = "0.1.0"
description = "Key-value stores, sparse Merkle state management and node bookkeeping for a zero-knowledge blockchain"
requires-python = ">=3.10"
dependencies = []
keywords = ["blockchain", "zero-knowledge", "merkle", "kvstore", "state", "firewall"]
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
    "Topic :: Security :: Cryptography",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["bazuka"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
