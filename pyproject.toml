[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ocvsmd"
version = "0.1.0"
description = "Building blocks for an OpenCyphal node management service: TOML configuration, Cyphal/UDP and SocketCAN sockets, file server."
requires-python = ">=3.10"
keywords = ["cyphal", "udp", "multicast", "socketcan", "file-server", "toml"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "tomlkit",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["ocvsmd"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
