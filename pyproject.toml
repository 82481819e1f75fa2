[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nsatlas"
version = "0.1.0"
description = "Account and pdata storage plus a server probe for a Titanfall 2 master server"
requires-python = ">=3.10"
keywords = ["titanfall", "northstar", "master-server", "sqlite", "probe"]
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
    "Topic :: Games/Entertainment :: First Person Shooters",
    "Topic :: Database",
]
dependencies = [
    "cryptography",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
r2-a2s-probe = "nsatlas.probe_cli:main"

[tool.hatch.build.targets.wheel]
packages = ["nsatlas"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
