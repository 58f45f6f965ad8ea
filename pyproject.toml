[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pcilib"
version = "3.8.0"
description = "PCI configuration space access, device filtering, bus dumps and ID-to-name lookup"
requires-python = ">=3.10"
dependencies = []
keywords = ["pci", "lspci", "hardware", "configuration space", "bus dump"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
pcilib-example = "pcilib.example:main"

[tool.hatch.build.targets.wheel]
packages = ["pcilib"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
