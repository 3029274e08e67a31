[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lbstore"
version = "0.1.0"
description = "Segmented append-only key-value store with an HTTP front end, a sticky-hash load balancer and demo backends"
requires-python = ">=3.10"
dependencies = []
keywords = ["key-value", "database", "segments", "compaction", "load-balancer", "http"]
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
    "Topic :: Database :: Database Engines/Servers",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
lbstore-balancer = "lbstore.balancer:main"
lbstore-server = "lbstore.server:main"
lbstore-db = "lbstore.dbserver:main"
lbstore-client = "lbstore.client:main"
lbstore-stats = "lbstore.stats:main"

[tool.hatch.build.targets.wheel]
packages = ["lbstore"]

[tool.pytest.ini_options]
addopts = "-ra"
