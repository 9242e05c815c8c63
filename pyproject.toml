[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "reslimits"
version = "0.1.0"
description = "Resource limit enforcement, usage monitoring and violation detection for managed processes"
requires-python = ">=3.10"
dependencies = ["psutil"]
keywords = ["resource limits", "process monitoring", "rlimit", "memory", "cpu", "supervisor"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: MacOS",
    "Operating System :: POSIX :: Linux",
    "Operating System :: Microsoft :: Windows",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["reslimits"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
