[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "iotaweb"
version = "2.7.4"
description = "Request routing, file serving and URL handling for an energy-monitor web server"
requires-python = ">=3.10"
dependencies = []
keywords = ["energy-monitor", "web-server", "http", "url", "file-server"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["iotaweb"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
