[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dapbridge"
version = "0.1.0"
description = "KCP transport, JSON API routing, key-value storage and a UART-to-TCP bridge for a small wireless bridge device"
requires-python = ">=3.10"
keywords = ["kcp", "arq", "uart", "serial", "tcp", "bridge", "json-api", "websocket", "key-value"]
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
    "Topic :: System :: Networking",
    "Topic :: Terminals :: Serial",
]
dependencies = [
    "pyserial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
dapbridge-uart = "dapbridge.uart_bridge:main"

[tool.hatch.build.targets.wheel]
packages = ["dapbridge"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
