[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "evmstate"
version = "0.1.0"
description = "In-memory EVM account state: caches, bundle states, transitions and reverts"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["ethereum", "evm", "state", "bundle", "reverts", "changeset"]
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
    "Topic :: Database",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["evmstate"]

[tool.pytest.ini_options]
addopts = "-ra"
