[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "torrentwire"
version = "0.1.0"
description = "BitTorrent UDP and WebTorrent tracker wire protocols, WebTorrent swarm logic and a WebSocket load tester"
requires-python = ">=3.11"
keywords = [
    "bittorrent",
    "webtorrent",
    "tracker",
    "udp",
    "websocket",
    "protocol",
    "load-testing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: File Sharing",
    "Topic :: Internet",
    "Topic :: Software Development :: Testing :: Traffic Generation",
]
dependencies = [
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "hypothesis",
    "pytest-asyncio",
]

[project.scripts]
torrentwire-load-test = "torrentwire.loadtest_main:main"

[tool.hatch.build.targets.wheel]
packages = ["torrentwire"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
