[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "courtdemo"
version = "2.11.0"
description = "Courtroom roleplay client toolkit: packets, animation playback, chat logs and a demo playback server"
requires-python = ">=3.10"
keywords = ["roleplay", "courtroom", "demo", "websocket", "animation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment :: Role-Playing",
]
dependencies = [
    "pillow",
    "websockets",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
courtdemo = "courtdemo.demoserver:main"

[tool.hatch.build.targets.wheel]
packages = ["courtdemo"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
