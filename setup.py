"""Setup configuration for Streamcrew."""

from setuptools import setup, find_packages

setup(
    name="streamcrew",
    version="0.0.1",
    description="AI chat personas and moderation for live-stream channels",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "openai",
        "jsonschema",
        "PyYAML",
        "python-dotenv",
        "prompt_toolkit",
        "aiosqlite",
        "aiohttp",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "streamcrew=streamcrew.main:main",
        ],
    },
)
