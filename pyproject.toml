[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "fakecore"
version = "0.1.0"
description = "An in-process fake Bitcoin Core JSON-RPC server with a scriptable chain, mempool and wallet for tests"
requires-python = ">=3.10"
dependencies = []
keywords = ["bitcoin", "json-rpc", "testing", "mock", "fake"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Testing :: Mocking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["fakecore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
