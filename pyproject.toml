[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vmwnet"
version = "0.1.0"
description = "Parsers for desktop hypervisor networking files: dhcpd.conf, dhcpd leases, netmap.conf and networking"
requires-python = ">=3.10"
dependencies = []
keywords = ["dhcp", "dhcpd", "leases", "netmap", "vmnet", "networking", "parser"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["vmwnet"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
