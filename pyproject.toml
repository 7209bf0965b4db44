[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "edgenet"
version = "0.5.0"
description = "Async networking interfaces, an asyncio socket stack, timeouts and an mDNS / DNS-SD responder"
requires-python = ">=3.11"
dependencies = []
keywords = ["network", "mdns", "dns-sd", "udp", "tcp", "multicast", "asyncio"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Framework :: AsyncIO",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["edgenet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
