[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xexkit"
version = "0.1.0"
description = "Tools for reading Xbox 360 executables, applying delta patches and parsing XDBF resources"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["xbox360", "xex", "xdbf", "lzx", "powerpc", "emulation"]
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
    "Topic :: System :: Emulators",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["xexkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
