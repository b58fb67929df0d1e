[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "orderflow"
version = "0.1.0"
description = "Event-driven order pipeline: an HTTP order intake service and the inventory, warehouse, shipper and notification consumers behind it"
requires-python = ">=3.10"
keywords = ["orders", "events", "consumer", "dead-letter-queue", "kpi", "flask", "microservices"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Framework :: Flask",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "flask",
    "filelock",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
orderflow-order-service = "orderflow.order_service:main"
orderflow-inventory = "orderflow.inventory:main"
orderflow-notification = "orderflow.notification:main"
orderflow-warehouse = "orderflow.warehouse:main"
orderflow-shipper = "orderflow.shipper:main"

[tool.hatch.build.targets.wheel]
packages = ["orderflow"]

[tool.hatch.build.targets.sdist]
include = ["orderflow", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"
