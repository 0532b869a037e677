from setuptools import setup, find_packages

setup(
    name="trygraph",
    version="0.0.1",
    description="Instantiates and submits task graphs for pushes to a task scheduler",
    author="Arsen Arsenovic",
    author_email="arsen@aarsen.me",
    packages=find_packages(exclude=["tests", "tests.*"]),
    license="AGPL-3.0-only",
    python_requires=">=3.11",
    install_requires=[
        "aiohttp",
        "attrs",
        "Jinja2",
        "pydantic",
        "PyYAML",
        "toml",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "trygraph-submit = trygraph.cli:main",
        ]
    }
)
