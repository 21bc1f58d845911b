[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lifeup"
version = "0.1.0"
description = "A small HTTP backend for a gamified task, skill and coaching-chat tracker backed by SQLite"
requires-python = ">=3.10"
keywords = ["tasks", "habits", "gamification", "rest", "api", "sqlite", "flask"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Framework :: Flask",
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
dependencies = [
    "flask>=2.2",
    "python-dotenv>=1.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
]

[project.scripts]
lifeup = "lifeup.app:main"

[tool.hatch.build.targets.wheel]
packages = ["lifeup"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
