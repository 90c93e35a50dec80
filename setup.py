"""
Setup script for quizflow.

quizflow runs timed question sessions as an event-driven state machine:

1. Primary pass - questions in order, with bounded retries per question
2. Skip-and-revisit - skipped questions wait in a FIFO queue and are
   revisited on request or drained once the primary pass is complete
3. Review - a separately timed review phase closes the session

The 'quizflow' command plays a JSON question bank in the terminal.
"""

from setuptools import find_packages, setup

setup(
    name="quizflow",
    version="1.0.0",
    description="Timed quiz session state machine with skip-and-revisit sequencing",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="quizflow contributors",
    packages=find_packages(include=["quizflow", "quizflow.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "quizflow=quizflow.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Framework :: AsyncIO",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="quiz state-machine asyncio cli education",
)
