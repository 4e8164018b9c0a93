[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "enginepy"
version = "0.1.0"
description = "An asyncio Engine.IO engine (protocol v3 and v4): packets, payloads, sessions, heartbeat, long-polling and WebSocket handling."
requires-python = ">=3.10"
keywords = ["engine.io", "asyncio", "websocket", "long-polling", "realtime"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = []

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["enginepy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
